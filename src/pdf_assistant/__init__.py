"""Core package for the PDF assistant."""

__version__ = "0.1.0"
