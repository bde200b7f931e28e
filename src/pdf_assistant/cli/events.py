"""Event handling helpers for the CLI transcription app."""

from __future__ import annotations

from typing import Any

from pdf_assistant.cli.logging_utils import ERROR_LOG_LABEL, LOGGER, TRANSCRIPT_LOG_LABEL
from pdf_assistant.network.protocol import (
    ERROR_EVENT,
    TRANSCRIPT_COMPLETED_EVENT,
    TRANSCRIPT_DELTA_EVENT,
    error_message,
)


def handle_transcription_event(event: dict[str, Any]) -> None:
    """Pretty-print OpenAI transcription events for the terminal."""

    event_type = event.get("type")

    if event_type == TRANSCRIPT_DELTA_EVENT:
        delta = event.get("delta", "")
        LOGGER.verbose("PARTIAL", delta, flush=True)

    elif event_type == TRANSCRIPT_COMPLETED_EVENT:
        transcript = event.get("transcript", "")
        LOGGER.log(TRANSCRIPT_LOG_LABEL, transcript)

    elif event_type == "input_audio_buffer.speech_started":
        LOGGER.verbose("VAD", "Speech started")

    elif event_type == "input_audio_buffer.committed":
        item_id = event.get("item_id", "")
        LOGGER.verbose("VAD", f"Utterance committed (item: {item_id})")

    elif event_type == ERROR_EVENT:
        error = event.get("error")
        details = error if isinstance(error, dict) else {}
        error_type = details.get("type", "unknown")
        error_code = details.get("code", "unknown")
        message = error_message(event)
        LOGGER.log(
            ERROR_LOG_LABEL,
            f"{error_type} ({error_code}): {message}",
            error=True,
        )

    elif event_type == "transcription_session.created":
        LOGGER.verbose("INFO", "Transcription session created")

    elif event_type == "transcription_session.updated":
        LOGGER.verbose("INFO", "Transcription session configuration updated")

    else:
        LOGGER.verbose("DEBUG", f"Received event: {event_type}")
