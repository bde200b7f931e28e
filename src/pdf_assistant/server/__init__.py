"""aiohttp service exposing the PDF library, credentials and suggestions."""

from .app import create_app, start_server

__all__ = ["create_app", "start_server"]
