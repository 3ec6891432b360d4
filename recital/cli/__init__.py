"""Terminal front-end for the recital engine."""
