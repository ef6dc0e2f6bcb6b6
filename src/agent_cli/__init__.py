"""Command-line runner for Vertesia agents."""

__version__ = "1.0.0"
