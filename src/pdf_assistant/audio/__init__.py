"""Audio capture and sample conversion with lazy imports to avoid cycles."""

from __future__ import annotations

from typing import TYPE_CHECKING

__all__ = ["AudioCapture", "encode_audio_block", "float_to_pcm16"]


def __getattr__(name: str):
    if name == "AudioCapture":
        from .capture import AudioCapture as _AudioCapture

        return _AudioCapture
    if name in ("encode_audio_block", "float_to_pcm16"):
        from . import conversion

        return getattr(conversion, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


if TYPE_CHECKING:  # pragma: no cover - import-time only
    from .capture import AudioCapture as AudioCapture
    from .conversion import encode_audio_block as encode_audio_block
    from .conversion import float_to_pcm16 as float_to_pcm16
