"""Task bridge: lifecycle coordination for agent-requested execution tasks."""

__version__ = "0.3.0"
