"""Resilient asyncio HTTP client core."""

__version__ = "0.1.0"
