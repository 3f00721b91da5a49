"""shellsense - structured intelligence for terminal output streams."""

__version__ = "0.1.0"
