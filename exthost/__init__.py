"""exthost: extension lifecycle runtime and package installer for a host application."""

__version__ = "0.1.0"
