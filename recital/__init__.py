"""
Recital: spaced-repetition scheduling engine for memorizing literature.

Packages:
- recital.core: domain models and errors
- recital.db: review state store contract and implementations
- recital.delivery: scheduler, queue builder, session manager, stats
- recital.cli: terminal front-end
"""

__version__ = "1.0.0"
