"""
Entry point for running the CLI as a module.

Usage:
    python -m recital.cli study --learner alice
    python -m recital.cli stats --learner alice
    python -m recital.cli --help
"""
from .main import main

if __name__ == "__main__":
    main()
