"""Custom exception types shared across the PDF assistant package."""


class TranscriptionError(RuntimeError):
    """Base class for failures surfaced by a realtime transcription session."""


class CredentialError(TranscriptionError):
    """Raised when an ephemeral credential cannot be obtained."""


class SessionConnectionError(TranscriptionError):
    """Raised when the realtime transport is missing, already open, or fails."""


class RecordingError(TranscriptionError):
    """Raised when the microphone cannot be acquired."""


class ProtocolError(TranscriptionError):
    """Raised for error frames reported by the remote transcription service."""


class PdfStorageError(RuntimeError):
    """Base class for PDF library failures."""


class PdfNotFoundError(PdfStorageError):
    """Raised when the requested PDF does not exist."""


class InvalidPdfError(PdfStorageError):
    """Raised when a name or payload is not an acceptable PDF."""
