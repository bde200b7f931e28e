"""Sample-format helpers for streaming microphone audio to the Realtime API."""

from __future__ import annotations

import base64

import numpy as np

PCM16_SCALE = 0x7FFF

__all__ = ["PCM16_SCALE", "encode_audio_block", "float_to_pcm16"]


def float_to_pcm16(samples) -> bytes:
    """
    Convert float samples in [-1, 1] to little-endian signed 16-bit PCM.

    Samples are clamped to the unit range, scaled by 32767 and truncated toward
    zero, so 1.0 maps to 32767 and -1.0 maps to -32767. NaN becomes silence.
    """

    block = np.nan_to_num(np.asarray(samples, dtype=np.float64).ravel(), nan=0.0)
    clipped = np.clip(block, -1.0, 1.0)
    return np.trunc(clipped * PCM16_SCALE).astype("<i2").tobytes()


def encode_audio_block(pcm_bytes: bytes) -> str:
    """Return the base64 text carried by an ``input_audio_buffer.append`` message."""

    return base64.b64encode(pcm_bytes).decode("ascii")
