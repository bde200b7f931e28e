"""Command-line entry points and console logging."""
