"""
Audio capture module for real-time speech-to-text transcription
Handles microphone capture and PCM16 conversion on the PortAudio thread
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Optional

from pdf_assistant.cli.logging_utils import AUDIO_LOG_LABEL, ERROR_LOG_LABEL, LOGGER
from pdf_assistant.config import (
    AUDIO_INPUT_DEVICE,
    AUTO_GAIN_CONTROL,
    BLOCK_SIZE,
    CHANNELS,
    DTYPE,
    ECHO_CANCELLATION,
    NOISE_SUPPRESSION,
    SAMPLE_RATE,
)
from pdf_assistant.core.exceptions import RecordingError

from .conversion import float_to_pcm16

BlockHandler = Callable[[bytes], None]


def _device_record(info: object) -> dict[str, object]:
    """Flatten a PortAudio device description (dict or DeviceList entry) into a dict."""

    if isinstance(info, Mapping):
        return dict(info.items())
    if hasattr(info, "__dict__"):
        return dict(vars(info))
    return {}


def _load_sounddevice():
    import sounddevice

    return sounddevice


@dataclass(frozen=True)
class CaptureSettings:
    """Microphone constraints requested for a recording."""

    sample_rate: int = SAMPLE_RATE
    channels: int = CHANNELS
    block_size: int = BLOCK_SIZE
    dtype: str = DTYPE
    device: Optional[str] = AUDIO_INPUT_DEVICE
    echo_cancellation: bool = ECHO_CANCELLATION
    noise_suppression: bool = NOISE_SUPPRESSION
    auto_gain_control: bool = AUTO_GAIN_CONTROL


class AudioCapture:
    """Handles audio capture from the microphone"""

    def __init__(self, *, backend: Any = None, settings: Optional[CaptureSettings] = None):
        self._backend = backend
        self.settings = settings or CaptureSettings()
        self.stream = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.input_device = None
        self.callback_count = 0
        self._on_block: Optional[BlockHandler] = None
        self._active = False

    @property
    def sd(self):
        if self._backend is None:
            self._backend = _load_sounddevice()
        return self._backend

    @property
    def is_active(self) -> bool:
        return self._active

    def callback(self, indata, frames, time_info, status):
        """
        Audio callback function called by sounddevice for each audio block.
        Runs on the PortAudio thread: convert, hand off to the loop, never block.

        Args:
            indata: Input audio data as numpy array
            frames: Number of frames
            time_info: Time information
            status: Status flags
        """
        on_block = self._on_block
        loop = self.loop
        if not self._active or on_block is None or loop is None:
            return

        self.callback_count += 1
        if status:
            LOGGER.verbose(AUDIO_LOG_LABEL, f"Audio callback status: {status}")

        channel = indata[:, 0] if getattr(indata, "ndim", 1) > 1 else indata
        pcm_bytes = float_to_pcm16(channel)

        try:
            loop.call_soon_threadsafe(on_block, pcm_bytes)
        except RuntimeError:
            # Loop already closed while the stream was shutting down.
            return

    def start_stream(self, loop: asyncio.AbstractEventLoop, on_block: BlockHandler) -> None:
        """
        Acquire the microphone and start delivering PCM16 blocks to ``on_block``.

        Args:
            loop: asyncio event loop that receives blocks via call_soon_threadsafe
            on_block: callable invoked on the loop with each block's PCM16 bytes

        Raises:
            RecordingError: when no device can be opened with the requested settings.
                Nothing stays allocated in that case.
        """
        if self._active:
            raise RecordingError("Audio stream already active")

        settings = self.settings
        LOGGER.verbose(AUDIO_LOG_LABEL, "Initializing audio stream...")
        LOGGER.verbose(AUDIO_LOG_LABEL, f"  Sample rate: {settings.sample_rate} Hz")
        LOGGER.verbose(AUDIO_LOG_LABEL, f"  Channels: {settings.channels}")
        LOGGER.verbose(AUDIO_LOG_LABEL, f"  Block size: {settings.block_size} frames")
        LOGGER.verbose(AUDIO_LOG_LABEL, f"  Data type: {settings.dtype}")
        self._report_processing_constraints()

        try:
            sd = self.sd
        except (ImportError, OSError) as exc:
            raise RecordingError(f"Audio backend unavailable: {exc}") from exc

        device = self._select_input_device()
        LOGGER.verbose(AUDIO_LOG_LABEL, f"  Input device: {self._describe_device(device)}")
        self._ensure_sample_rate_supported(device)

        try:
            stream = sd.InputStream(
                samplerate=settings.sample_rate,
                channels=settings.channels,
                dtype=settings.dtype,
                blocksize=settings.block_size,
                callback=self.callback,
                device=device,
            )
        except Exception as exc:
            raise self._stream_initialization_error(exc, device) from exc

        self.loop = loop
        self._on_block = on_block
        self._active = True
        try:
            stream.start()
        except Exception as exc:
            self._active = False
            self._on_block = None
            self.loop = None
            self._close_quietly(stream)
            raise RecordingError(f"Unable to start audio input stream: {exc}") from exc

        self.stream = stream
        self.input_device = device
        self.callback_count = 0
        LOGGER.verbose(AUDIO_LOG_LABEL, "Audio stream started")

    def stop_stream(self) -> bool:
        """Stop and close the audio stream; returns False when nothing was active."""
        self._active = False
        self._on_block = None
        self.loop = None
        stream = self.stream
        self.stream = None
        if stream is None:
            return False

        try:
            stream.stop()
        except Exception as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Error stopping audio stream: {exc}", error=True)
        self._close_quietly(stream)
        LOGGER.verbose(AUDIO_LOG_LABEL, "Audio stream closed")
        return True

    def _report_processing_constraints(self) -> None:
        settings = self.settings
        requested = [
            label
            for label, enabled in (
                ("echo cancellation", settings.echo_cancellation),
                ("noise suppression", settings.noise_suppression),
                ("auto gain control", settings.auto_gain_control),
            )
            if enabled
        ]
        if requested:
            LOGGER.verbose(
                AUDIO_LOG_LABEL,
                f"  Requested processing: {', '.join(requested)} "
                "(applied by the host audio stack; PortAudio passes raw samples)",
            )

    @staticmethod
    def _close_quietly(stream) -> None:
        try:
            stream.close()
        except Exception as exc:
            LOGGER.log(ERROR_LOG_LABEL, f"Error closing audio stream: {exc}", error=True)

    def _ensure_sample_rate_supported(self, device) -> None:
        """Validate that the selected device accepts the configured sample rate."""

        settings = self.settings
        try:
            self.sd.check_input_settings(
                device=device,
                channels=settings.channels,
                dtype=settings.dtype,
                samplerate=settings.sample_rate,
            )
        except Exception as exc:
            raise self._unsupported_sample_rate_error(device) from exc

    def _unsupported_sample_rate_error(self, device) -> RecordingError:
        """Return a descriptive error when the mic rejects the sample rate."""

        device_label = self._describe_device(device)
        return RecordingError(
            f"Microphone {device_label} does not support "
            f"SAMPLE_RATE={self.settings.sample_rate} Hz."
        )

    def _stream_initialization_error(self, exc: Exception, device) -> RecordingError:
        message = str(exc).lower()
        if "sample rate" in message or "painvalidsamplerate" in message:
            return self._unsupported_sample_rate_error(device)

        return RecordingError(
            "Unable to initialize audio input stream. "
            "Verify that a microphone is connected and permission is granted. "
            "Set AUDIO_INPUT_DEVICE to override the default device."
        )

    def _select_input_device(self):
        """
        Pick the microphone: AUDIO_INPUT_DEVICE override, then the system default
        input, then the first enumerated device with enough input channels.
        """
        override = (self.settings.device or "").strip()
        if override:
            device = int(override) if override.lstrip("-").isdigit() else override
            if self._lookup(device) is None:
                raise RecordingError(
                    f"AUDIO_INPUT_DEVICE '{device}' is not recognized by sounddevice."
                )
            return device

        default = self.sd.default.device
        default_input = default[0] if isinstance(default, (list, tuple)) else default
        if isinstance(default_input, int) and default_input >= 0:
            if self._lookup(default_input) is not None:
                return default_input

        try:
            devices = self.sd.query_devices()
        except Exception as exc:
            raise RecordingError(
                "Unable to query audio devices via PortAudio. "
                "Check that a microphone is attached and accessible."
            ) from exc

        records = devices if isinstance(devices, (list, tuple)) else [devices]
        for index, info in enumerate(records):
            channels = _device_record(info).get("max_input_channels")
            if isinstance(channels, (int, float)) and channels >= self.settings.channels:
                return index

        raise RecordingError(
            "No audio input devices with the required channel count were found. "
            "Connect a microphone and retry."
        )

    def _lookup(self, device) -> Optional[dict[str, object]]:
        try:
            return _device_record(self.sd.query_devices(device))
        except Exception:
            return None

    def _describe_device(self, device) -> str:
        if device is None:
            return "system default"
        info = self._lookup(device)
        if info is None:
            return str(device)
        name = info.get("name") or "Unknown device"
        index = info.get("index", device)
        return f"{name} (id {index})"
