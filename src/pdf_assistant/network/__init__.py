"""Network clients for the OpenAI Realtime transcription endpoint."""

from .credentials import EphemeralCredentialClient
from .websocket_client import RealtimeWebSocketClient

__all__ = ["EphemeralCredentialClient", "RealtimeWebSocketClient"]
