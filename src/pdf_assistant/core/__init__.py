"""Shared primitives for the PDF assistant."""
