"""Catalog synchronization and override resolution."""

__version__ = "0.1.0"
