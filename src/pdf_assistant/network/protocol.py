"""Message types exchanged with the OpenAI Realtime transcription endpoint."""

from __future__ import annotations

import copy
import json
from typing import Any, Optional

from pdf_assistant.config import SESSION_CONFIG

SESSION_UPDATE_EVENT = "transcription_session.update"
AUDIO_APPEND_EVENT = "input_audio_buffer.append"
TRANSCRIPT_DELTA_EVENT = "conversation.item.input_audio_transcription.delta"
TRANSCRIPT_COMPLETED_EVENT = "conversation.item.input_audio_transcription.completed"
ERROR_EVENT = "error"

TRANSCRIPTION_EVENT_TYPES = frozenset({TRANSCRIPT_DELTA_EVENT, TRANSCRIPT_COMPLETED_EVENT})


def session_update_event(session: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Build the configuration message that must precede any audio."""

    return {
        "type": SESSION_UPDATE_EVENT,
        "session": copy.deepcopy(session if session is not None else SESSION_CONFIG),
    }


def audio_append_event(audio_base64: str) -> dict[str, Any]:
    return {"type": AUDIO_APPEND_EVENT, "audio": audio_base64}


def decode_event(raw: str | bytes) -> Optional[dict[str, Any]]:
    """Parse an inbound frame; return None for malformed JSON or non-object payloads."""

    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        event = json.loads(text)
    except ValueError:
        return None
    if not isinstance(event, dict):
        return None
    return event


def error_message(event: dict[str, Any]) -> str:
    """Extract the human-readable message from an ``error`` event."""

    error = event.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if message:
            return str(message)
    elif isinstance(error, str) and error.strip():
        return error.strip()
    return "Unknown error"


__all__ = [
    "AUDIO_APPEND_EVENT",
    "ERROR_EVENT",
    "SESSION_UPDATE_EVENT",
    "TRANSCRIPTION_EVENT_TYPES",
    "TRANSCRIPT_COMPLETED_EVENT",
    "TRANSCRIPT_DELTA_EVENT",
    "audio_append_event",
    "decode_event",
    "error_message",
    "session_update_event",
]
