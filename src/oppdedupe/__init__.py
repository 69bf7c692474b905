"""Duplicate detection for discovered artist opportunities."""

__version__ = "0.1.0"
