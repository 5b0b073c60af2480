"""Shrink and repair EPUB files."""

__version__ = "0.1.0"
