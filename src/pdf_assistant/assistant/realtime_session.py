"""
Realtime transcription session: credential, transport, audio and transcript.

All state transitions happen on the asyncio event loop. The PortAudio thread
only converts samples and posts them to the loop; a single sender task drains
outgoing messages so audio leaves in capture order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional

from pdf_assistant.audio.capture import AudioCapture
from pdf_assistant.audio.conversion import encode_audio_block
from pdf_assistant.cli.logging_utils import (
    AUDIO_LOG_LABEL,
    ERROR_LOG_LABEL,
    LOGGER,
    SESSION_LOG_LABEL,
    log_state_transition,
)
from pdf_assistant.core.exceptions import (
    CredentialError,
    ProtocolError,
    RecordingError,
    SessionConnectionError,
    TranscriptionError,
)
from pdf_assistant.network import protocol
from pdf_assistant.network.credentials import EphemeralCredentialClient
from pdf_assistant.network.websocket_client import RealtimeWebSocketClient

from .event_log import EventDirection, EventLog, EventLogEntry
from .transcript import TranscriptBuffer

EventListener = Callable[[dict[str, Any]], None]


class SessionStatus(str, Enum):
    """CONNECTED means a credential is held, not that a transport is open."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTED = "CONNECTED"


class TransportState(str, Enum):
    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


class RealtimeTranscriptionSession:
    """Owns one speech-to-text session from credential to teardown."""

    def __init__(
        self,
        *,
        credential_client: Optional[EphemeralCredentialClient] = None,
        ws_client: Optional[RealtimeWebSocketClient] = None,
        audio_capture: Optional[AudioCapture] = None,
        event_log: Optional[EventLog] = None,
        transcript: Optional[TranscriptBuffer] = None,
        on_event: Optional[EventListener] = None,
    ):
        self._credential_client = credential_client or EphemeralCredentialClient()
        self._ws_client = ws_client or RealtimeWebSocketClient()
        self._audio_capture = audio_capture or AudioCapture()
        self._event_log = event_log if event_log is not None else EventLog()
        self._transcript = transcript if transcript is not None else TranscriptBuffer()
        self._on_event = on_event

        self.status = SessionStatus.DISCONNECTED
        self.error: Optional[str] = None
        self.is_loading = False
        self.is_recording = False

        self._credential: Optional[str] = None
        self._transport_state = TransportState.CLOSED
        self._outgoing: Optional[asyncio.Queue[dict[str, Any]]] = None
        self._sender_task: Optional[asyncio.Task[None]] = None
        self._receive_task: Optional[asyncio.Task[None]] = None

    # ------------------------------------------------------------------
    # Read-only state
    @property
    def credential(self) -> Optional[str]:
        return self._credential

    @property
    def transport_state(self) -> TransportState:
        return self._transport_state

    @property
    def is_transport_connected(self) -> bool:
        return self._transport_state is TransportState.OPEN

    @property
    def transcript(self) -> str:
        return self._transcript.text

    @property
    def event_logs(self) -> list[EventLogEntry]:
        return self._event_log.entries()

    # ------------------------------------------------------------------
    # Credential
    async def fetch_credential(self) -> str:
        """Acquire an ephemeral credential; status becomes CONNECTED on success."""

        self.is_loading = True
        self.error = None
        self._credential = None
        try:
            credential = await self._credential_client.fetch_credential()
        except CredentialError as exc:
            self._set_status(SessionStatus.DISCONNECTED, "credential request failed")
            self._surface_error(exc, f"Failed to fetch ephemeral key: {exc}")
            raise
        finally:
            self.is_loading = False

        self._credential = credential
        self._set_status(SessionStatus.CONNECTED, "credential acquired")
        return credential

    # ------------------------------------------------------------------
    # Transport
    async def connect(self) -> None:
        """
        Open the transport with the held credential and send the session config.

        Raises:
            SessionConnectionError: no credential, a transport already exists,
                or the handshake failed
        """
        if self._transport_state is not TransportState.CLOSED:
            error = SessionConnectionError("connection already open")
            self._surface_error(error)
            raise error

        credential = self._credential
        if not credential:
            error = SessionConnectionError("missing credential")
            self._surface_error(error, "No ephemeral key available")
            raise error

        self._credential = None
        self._transport_state = TransportState.CONNECTING
        try:
            await self._ws_client.connect(credential)
        except SessionConnectionError as exc:
            self._transport_state = TransportState.CLOSED
            self._set_status(SessionStatus.DISCONNECTED, "connection failed")
            self._event_log.append("connection.error", EventDirection.INCOMING, {"error": str(exc)})
            self._surface_error(exc)
            raise

        self._transport_state = TransportState.OPEN
        LOGGER.verbose(SESSION_LOG_LABEL, "WebSocket connected")
        self._event_log.append(
            "connection.opened", EventDirection.INCOMING, {"status": "connected"}
        )

        try:
            await self._send_event(protocol.session_update_event())
        except SessionConnectionError as exc:
            self._surface_error(exc)
            await self._ws_client.close()
            self._handle_transport_closed()
            raise

        self._outgoing = asyncio.Queue()
        self._sender_task = asyncio.create_task(self._run_sender(self._outgoing))
        self._receive_task = asyncio.create_task(self._receive_loop())

    async def disconnect(self) -> None:
        """Close the transport; in-flight outgoing messages are not guaranteed delivery."""

        if self._transport_state is TransportState.CLOSED:
            return

        self._transport_state = TransportState.CLOSING
        receive_task = self._receive_task
        await self._ws_client.close()
        if receive_task is not None and not receive_task.done():
            receive_task.cancel()
            await asyncio.wait({receive_task})
        self._handle_transport_closed()

    async def wait_closed(self) -> None:
        """Wait until the transport closes (remote close, failure, or disconnect)."""

        receive_task = self._receive_task
        if receive_task is not None and not receive_task.done():
            await asyncio.wait({receive_task})

    async def drain_outgoing(self) -> None:
        """Wait until every queued outgoing message has been sent or dropped."""

        queue = self._outgoing
        if queue is not None:
            await queue.join()

    async def _receive_loop(self) -> None:
        try:
            async for event in self._ws_client.receive_events():
                self._handle_event(event)
        except SessionConnectionError as exc:
            self._event_log.append("connection.error", EventDirection.INCOMING, {"error": str(exc)})
            self._surface_error(exc, "WebSocket connection error")
        except Exception as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Receive loop failed: {exc}", error=True, exc_info=True)
            self._event_log.append("connection.error", EventDirection.INCOMING, {"error": str(exc)})
            self.error = "WebSocket connection error"
        finally:
            # disconnect() owns teardown once it has moved the transport to CLOSING.
            if self._transport_state is TransportState.OPEN:
                await self._ws_client.close()
                self._handle_transport_closed()

    def _handle_transport_closed(self) -> None:
        if self._transport_state is TransportState.CLOSED:
            return

        self._transport_state = TransportState.CLOSED
        LOGGER.verbose(SESSION_LOG_LABEL, "WebSocket closed")
        self._event_log.append("connection.closed", EventDirection.INCOMING, {"status": "closed"})

        sender_task = self._sender_task
        self._sender_task = None
        if sender_task is not None and not sender_task.done():
            sender_task.cancel()
        self._discard_pending_outgoing()
        self._outgoing = None

        self._credential = None
        self._set_status(SessionStatus.DISCONNECTED, "transport closed")
        if self.is_recording:
            self.stop_recording()

    def _handle_event(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")
        self._event_log.append(str(event_type), EventDirection.INCOMING, event)

        if event_type == protocol.TRANSCRIPT_DELTA_EVENT:
            fragment = event.get("delta") or event.get("transcript")
            if isinstance(fragment, str):
                self._transcript.append_delta(fragment)
        elif event_type == protocol.TRANSCRIPT_COMPLETED_EVENT:
            fragment = event.get("transcript")
            if isinstance(fragment, str):
                self._transcript.append_completed(fragment)
        elif event_type == protocol.ERROR_EVENT:
            message = protocol.error_message(event)
            self._surface_error(ProtocolError(f"WebSocket error: {message}"))

        if self._on_event is not None:
            try:
                self._on_event(event)
            except Exception:
                LOGGER.log(
                    ERROR_LOG_LABEL,
                    f"Event listener failed on {event_type}",
                    error=True,
                    exc_info=True,
                )

    async def _send_event(self, event: dict[str, Any]) -> None:
        self._event_log.append(str(event.get("type")), EventDirection.OUTGOING, event)
        await self._ws_client.send_event(event)

    async def _run_sender(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        while True:
            event = await queue.get()
            try:
                if self._should_send(event):
                    await self._send_event(event)
            except SessionConnectionError as exc:
                LOGGER.log(
                    ERROR_LOG_LABEL,
                    f"Dropping outgoing {event.get('type')}: {exc}",
                    error=True,
                )
            finally:
                queue.task_done()

    def _should_send(self, event: dict[str, Any]) -> bool:
        if self._transport_state is not TransportState.OPEN:
            return False
        if event.get("type") == protocol.AUDIO_APPEND_EVENT:
            return self.is_recording
        return True

    def _discard_pending_outgoing(self) -> None:
        queue = self._outgoing
        if queue is None:
            return
        while True:
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            queue.task_done()

    # ------------------------------------------------------------------
    # Audio
    async def start_recording(self) -> None:
        """
        Acquire the microphone and stream audio while the transport is open.

        Raises:
            RecordingError: the microphone could not be acquired; state is unchanged
        """
        if self.is_recording:
            LOGGER.verbose(AUDIO_LOG_LABEL, "Recording already active")
            return

        loop = asyncio.get_running_loop()
        try:
            self._audio_capture.start_stream(loop, self._on_audio_block)
        except RecordingError as exc:
            self._surface_error(exc, f"Failed to start recording: {exc}")
            raise

        self.is_recording = True
        LOGGER.verbose(AUDIO_LOG_LABEL, "Recording started")
        self._event_log.append("recording.started", EventDirection.OUTGOING, {"status": "started"})

    def stop_recording(self) -> None:
        """Tear down the capture pipeline; safe to call repeatedly."""

        self._audio_capture.stop_stream()
        self.is_recording = False
        self._discard_pending_outgoing()
        LOGGER.verbose(AUDIO_LOG_LABEL, "Recording stopped")
        self._event_log.append("recording.stopped", EventDirection.OUTGOING, {"status": "stopped"})

    def _on_audio_block(self, pcm_bytes: bytes) -> None:
        # Blocks produced while the transport is not open are dropped, not buffered.
        queue = self._outgoing
        if not self.is_recording or queue is None or not self.is_transport_connected:
            return
        queue.put_nowait(protocol.audio_append_event(encode_audio_block(pcm_bytes)))

    # ------------------------------------------------------------------
    # Accessors
    def clear_transcript(self) -> None:
        self._transcript.clear()

    def clear_logs(self) -> None:
        self._event_log.clear()

    def clear_error(self) -> None:
        self.error = None

    async def aclose(self) -> None:
        """Stop recording and close the transport."""

        if self.is_recording:
            self.stop_recording()
        await self.disconnect()

    async def __aenter__(self) -> RealtimeTranscriptionSession:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    def _set_status(self, status: SessionStatus, reason: str) -> None:
        previous = self.status
        self.status = status
        log_state_transition(previous, status, reason)

    def _surface_error(self, exc: TranscriptionError, message: Optional[str] = None) -> None:
        self.error = message or str(exc)
        LOGGER.log(ERROR_LOG_LABEL, f"{type(exc).__name__}: {exc}", error=True)


__all__ = ["RealtimeTranscriptionSession", "SessionStatus", "TransportState"]
