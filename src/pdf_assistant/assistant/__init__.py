"""Realtime transcription session, transcript assembly and suggestions."""

from .event_log import EventDirection, EventLog, EventLogEntry
from .realtime_session import RealtimeTranscriptionSession, SessionStatus, TransportState
from .suggestions import SuggestionClient, SuggestionRequest
from .transcript import TranscriptBuffer

__all__ = [
    "EventDirection",
    "EventLog",
    "EventLogEntry",
    "RealtimeTranscriptionSession",
    "SessionStatus",
    "SuggestionClient",
    "SuggestionRequest",
    "TranscriptBuffer",
    "TransportState",
]
