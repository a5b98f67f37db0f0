"""Kindle notebook library, highlight and note extraction."""

__version__ = "1.0.0"
