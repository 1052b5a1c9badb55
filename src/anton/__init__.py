"""Son of Anton — a theatrical wrapper around an interactive coding agent."""

__version__ = "0.1.0"
