"""Environment settings loading."""

from .app import HttpSettings, get_settings


__all__ = ["HttpSettings", "get_settings"]
