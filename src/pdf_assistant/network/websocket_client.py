"""
WebSocket client module for real-time speech-to-text transcription
Handles the WebSocket connection to the OpenAI Realtime API
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any, Callable, Optional, Protocol, cast

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from pdf_assistant.cli.logging_utils import ERROR_LOG_LABEL, LOGGER, ws_log_label
from pdf_assistant.config import (
    CONNECT_TIMEOUT_SECONDS,
    OPENAI_API_KEY_SUBPROTOCOL_PREFIX,
    OPENAI_BETA_SUBPROTOCOL,
    OPENAI_REALTIME_ENDPOINT,
    OPENAI_REALTIME_SUBPROTOCOL,
)
from pdf_assistant.core.exceptions import SessionConnectionError

from .protocol import AUDIO_APPEND_EVENT, TRANSCRIPTION_EVENT_TYPES, decode_event

_MAX_SUMMARY_KEYS = 5
_MALFORMED_SNIPPET_CHARS = 120


class _WebSocketProtocol(Protocol):
    """Subset of the runtime WebSocket API used by the client."""

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...

    async def send(self, payload: str) -> None: ...

    async def close(self) -> None: ...


def realtime_subprotocols(credential: str) -> list[str]:
    """Sub-protocols that carry the ephemeral credential during the handshake."""

    return [
        OPENAI_REALTIME_SUBPROTOCOL,
        f"{OPENAI_API_KEY_SUBPROTOCOL_PREFIX}{credential}",
        OPENAI_BETA_SUBPROTOCOL,
    ]


class RealtimeWebSocketClient:
    """Handles the WebSocket connection to the OpenAI Realtime API"""

    def __init__(
        self,
        *,
        endpoint: str = OPENAI_REALTIME_ENDPOINT,
        open_timeout: float = CONNECT_TIMEOUT_SECONDS,
        connector: Optional[Callable[..., Any]] = None,
    ):
        self.websocket: _WebSocketProtocol | None = None
        self._endpoint = endpoint
        self._open_timeout = open_timeout
        self._connector = connector

    @property
    def connected(self) -> bool:
        return self.websocket is not None

    def _log_ws_payload(self, direction: str, payload: Any) -> None:
        """Verbose helper to display websocket payloads."""

        summary = self._summarize_payload(payload)
        if summary is not None:
            LOGGER.verbose(ws_log_label(direction), summary)

    def _summarize_payload(self, payload: Any) -> str | None:
        """Return a concise description for websocket payload logging, or None to silence."""

        def _summarize_keys(data: dict[str, Any]) -> str:
            keys = [key for key in data.keys() if key != "type"]
            if not keys:
                return "<none>"
            keys.sort()
            if len(keys) > _MAX_SUMMARY_KEYS:
                displayed = ", ".join(keys[:_MAX_SUMMARY_KEYS])
                return f"{displayed},…"
            return ", ".join(keys)

        if not isinstance(payload, dict):
            return type(payload).__name__

        payload_type = payload.get("type")
        if payload_type in TRANSCRIPTION_EVENT_TYPES:
            # Transcriptions carry raw user speech; keep them out of the logs.
            return None
        if payload_type == AUDIO_APPEND_EVENT:
            audio = payload.get("audio")
            length = len(audio) if isinstance(audio, str) else "?"
            return f"type={payload_type} audio_chars={length}"
        keys = _summarize_keys(payload)
        if payload_type:
            return f"type={payload_type} keys={keys}"
        return f"keys={keys}"

    async def connect(self, credential: str) -> None:
        """
        Open the WebSocket, authenticating with the ephemeral credential.

        The credential travels inside the sub-protocol negotiation; no separate
        auth message is sent.

        Raises:
            SessionConnectionError: a socket is already open or the handshake failed
        """
        if self.websocket is not None:
            raise SessionConnectionError("connection already open")

        LOGGER.verbose(ws_log_label(), "Connecting to OpenAI Realtime API...")
        LOGGER.verbose(ws_log_label(), f"Endpoint: {self._endpoint}")
        LOGGER.verbose(ws_log_label(), "Auth method: ephemeral credential")

        connector = self._connector or websockets.connect
        try:
            websocket = await connector(
                self._endpoint,
                subprotocols=realtime_subprotocols(credential),
                open_timeout=self._open_timeout,
            )
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            LOGGER.log(ERROR_LOG_LABEL, f"Error connecting to OpenAI: {e}", error=True)
            raise SessionConnectionError(f"Failed to connect WebSocket: {e}") from e

        self.websocket = cast(_WebSocketProtocol, websocket)
        LOGGER.verbose(ws_log_label(), "Connected to OpenAI Realtime API")

    def _require_websocket(self) -> _WebSocketProtocol:
        if not self.websocket:
            raise SessionConnectionError("WebSocket not connected")
        return self.websocket

    async def send_event(self, event: dict[str, Any]) -> None:
        """
        Serialize and send one protocol message

        Args:
            event: JSON-serializable message with a ``type`` field
        """
        websocket = self._require_websocket()
        try:
            await websocket.send(json.dumps(event))
        except ConnectionClosed as exc:
            raise SessionConnectionError(f"WebSocket closed while sending: {exc}") from exc
        self._log_ws_payload("→", event)

    async def receive_events(self) -> AsyncIterator[dict[str, Any]]:
        """
        Continuously receive events from OpenAI until the socket closes

        Malformed frames are logged and skipped.

        Yields:
            dict: Parsed JSON event from server

        Raises:
            SessionConnectionError: the connection dropped abnormally
        """
        websocket = self._require_websocket()

        try:
            async for message in websocket:
                event = decode_event(message)
                if event is None:
                    snippet = message[:_MALFORMED_SNIPPET_CHARS]
                    LOGGER.log(
                        ERROR_LOG_LABEL, f"Dropping malformed payload: {snippet!r}", error=True
                    )
                    continue
                self._log_ws_payload("←", event)
                yield event

        except ConnectionClosedOK:
            pass
        except ConnectionClosed as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"WebSocket connection lost: {exc}", error=True)
            raise SessionConnectionError(f"WebSocket connection lost: {exc}") from exc
        except OSError as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Error receiving events: {exc}", error=True)
            raise SessionConnectionError(f"Error receiving events: {exc}") from exc

        LOGGER.log(ws_log_label(), "WebSocket connection closed")

    async def close(self) -> None:
        """Close WebSocket connection"""
        websocket = self.websocket
        self.websocket = None
        if websocket is not None:
            await websocket.close()
            LOGGER.verbose(ws_log_label(), "WebSocket connection closed")


__all__ = ["RealtimeWebSocketClient", "realtime_subprotocols"]
