"""Catalog search, search history and search analytics service."""

__version__ = "1.0.0"
