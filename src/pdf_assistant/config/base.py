"""
Settings for the PDF assistant.

Values come from ``config/defaults.toml`` inside the package; any of them can be
replaced with the environment variable of the same (upper-case) name, either
exported or placed in a ``.env`` file in the working directory.
"""

from __future__ import annotations

import copy
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import tomllib
from dotenv import load_dotenv

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
DEFAULTS_PATH = PACKAGE_ROOT / "config" / "defaults.toml"
ENV_PATH = Path.cwd() / ".env"

load_dotenv(ENV_PATH)

if not DEFAULTS_PATH.exists():  # pragma: no cover - packaging issue
    raise FileNotFoundError(f"Missing {DEFAULTS_PATH}; reinstall pdf-assistant.")

with DEFAULTS_PATH.open("rb") as defaults_file:
    _DEFAULTS = tomllib.load(defaults_file)

_Number = TypeVar("_Number", int, float)
_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _coerce_path(value: str | Path) -> Path:
    """Expand ``~`` and anchor relative paths at the current working directory."""

    path = Path(value).expanduser()
    return path if path.is_absolute() else (Path.cwd() / path).resolve()


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    return default if raw is None else raw.strip().lower() in _TRUTHY


def _env_number(name: str, default: _Number, parse: Callable[[str], _Number]) -> _Number:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return parse(raw)
    except ValueError:
        sys.stderr.write(f"Invalid value for {name}={raw!r}; falling back to {default!r}.\n")
        return default


def _env_int(name: str, default: int) -> int:
    return _env_number(name, default, int)


def _env_float(name: str, default: float) -> float:
    return _env_number(name, default, float)


def _env_path(name: str, default: str) -> Path:
    return _coerce_path(os.getenv(name) or default)


def _env_str(name: str, default: str) -> str:
    """Return the stripped env override, or ``default`` when unset or blank."""

    return (os.getenv(name) or "").strip() or default


# Audio Configuration
_AUDIO = _DEFAULTS["audio"]
SAMPLE_RATE = _env_int("SAMPLE_RATE", _AUDIO["sample_rate"])
CHANNELS = _env_int("CHANNELS", _AUDIO["channels"])
BLOCK_SIZE = _env_int("BLOCK_SIZE", _AUDIO["block_size"])
DTYPE = os.getenv("DTYPE", _AUDIO["dtype"])
AUDIO_INPUT_DEVICE = os.getenv("AUDIO_INPUT_DEVICE")
ECHO_CANCELLATION = _env_bool("ECHO_CANCELLATION", _AUDIO["echo_cancellation"])
NOISE_SUPPRESSION = _env_bool("NOISE_SUPPRESSION", _AUDIO["noise_suppression"])
AUTO_GAIN_CONTROL = _env_bool("AUTO_GAIN_CONTROL", _AUDIO["auto_gain_control"])


# OpenAI API Configuration
_OPENAI = _DEFAULTS["openai"]
OPENAI_API_KEY = (os.getenv("OPENAI_API_KEY") or "").strip() or None
OPENAI_REALTIME_ENDPOINT = _env_str("OPENAI_REALTIME_ENDPOINT", _OPENAI["realtime_endpoint"])
OPENAI_REALTIME_SUBPROTOCOL = _OPENAI["realtime_subprotocol"]
OPENAI_BETA_SUBPROTOCOL = _OPENAI["beta_subprotocol"]
OPENAI_API_KEY_SUBPROTOCOL_PREFIX = _OPENAI["api_key_subprotocol_prefix"]
TRANSCRIPTION_SESSIONS_ENDPOINT = _env_str(
    "TRANSCRIPTION_SESSIONS_ENDPOINT", _OPENAI["transcription_sessions_endpoint"]
)
TRANSCRIPTION_SESSIONS_BETA_HEADER = _OPENAI["sessions_beta_header"]
CREDENTIAL_URL = _env_str("CREDENTIAL_URL", _OPENAI["credential_url"]) or None
CREDENTIAL_TIMEOUT_SECONDS = _env_float(
    "CREDENTIAL_TIMEOUT_SECONDS", _OPENAI["credential_timeout_seconds"]
)
CONNECT_TIMEOUT_SECONDS = _env_float("CONNECT_TIMEOUT_SECONDS", _OPENAI["connect_timeout_seconds"])

# Session Configuration sent as the first message on every transport
SESSION_CONFIG = copy.deepcopy(_DEFAULTS["session"])
_INPUT_TRANSCRIPTION_DEFAULTS = _DEFAULTS["session"]["input_audio_transcription"]
TRANSCRIPTION_MODEL = _env_str("TRANSCRIPTION_MODEL", _INPUT_TRANSCRIPTION_DEFAULTS["model"])
TRANSCRIPTION_LANGUAGE = _env_str(
    "TRANSCRIPTION_LANGUAGE", _INPUT_TRANSCRIPTION_DEFAULTS.get("language", "en")
)
SESSION_CONFIG["input_audio_transcription"]["model"] = TRANSCRIPTION_MODEL
SESSION_CONFIG["input_audio_transcription"]["language"] = TRANSCRIPTION_LANGUAGE

# Body used to mint an ephemeral transcription session
CREDENTIAL_REQUEST_BODY = copy.deepcopy(_DEFAULTS["credential_request"])
CREDENTIAL_REQUEST_BODY["input_audio_transcription"]["model"] = TRANSCRIPTION_MODEL

# Fixed; not configurable.
EVENT_LOG_CAPACITY = 50

# Suggestion Configuration
_SUGGESTIONS = _DEFAULTS["suggestions"]
SUGGESTION_MODEL = _env_str("SUGGESTION_MODEL", _SUGGESTIONS["model"])
SUGGESTION_MAX_TOKENS = _env_int("SUGGESTION_MAX_TOKENS", _SUGGESTIONS["max_tokens"])
SUGGESTION_TEMPERATURE = _env_float("SUGGESTION_TEMPERATURE", _SUGGESTIONS["temperature"])
SUGGESTION_SYSTEM_PROMPT = _SUGGESTIONS["system_prompt"].strip()

# Storage / HTTP server Configuration
PDF_DIRECTORY = _env_path("PDF_DIRECTORY", _DEFAULTS["storage"]["pdf_directory"])
_SERVER = _DEFAULTS["server"]
SERVER_HOST = _env_str("SERVER_HOST", _SERVER["host"])
SERVER_PORT = _env_int("SERVER_PORT", _SERVER["port"])

_LOGGING = _DEFAULTS["logging"]
VERBOSE_LOG_CAPTURE_ENABLED = _env_bool(
    "VERBOSE_LOG_CAPTURE_ENABLED", _LOGGING["verbose_capture_enabled"]
)
VERBOSE_LOG_DIRECTORY = (
    _env_path("VERBOSE_LOG_DIRECTORY", _LOGGING["verbose_log_directory"] or "logs")
    if VERBOSE_LOG_CAPTURE_ENABLED
    else None
)

__all__ = [
    "PACKAGE_ROOT",
    "DEFAULTS_PATH",
    "ENV_PATH",
    "SAMPLE_RATE",
    "CHANNELS",
    "BLOCK_SIZE",
    "DTYPE",
    "AUDIO_INPUT_DEVICE",
    "ECHO_CANCELLATION",
    "NOISE_SUPPRESSION",
    "AUTO_GAIN_CONTROL",
    "OPENAI_API_KEY",
    "OPENAI_REALTIME_ENDPOINT",
    "OPENAI_REALTIME_SUBPROTOCOL",
    "OPENAI_BETA_SUBPROTOCOL",
    "OPENAI_API_KEY_SUBPROTOCOL_PREFIX",
    "TRANSCRIPTION_SESSIONS_ENDPOINT",
    "TRANSCRIPTION_SESSIONS_BETA_HEADER",
    "CREDENTIAL_URL",
    "CREDENTIAL_TIMEOUT_SECONDS",
    "CONNECT_TIMEOUT_SECONDS",
    "SESSION_CONFIG",
    "TRANSCRIPTION_MODEL",
    "TRANSCRIPTION_LANGUAGE",
    "CREDENTIAL_REQUEST_BODY",
    "EVENT_LOG_CAPACITY",
    "SUGGESTION_MODEL",
    "SUGGESTION_MAX_TOKENS",
    "SUGGESTION_TEMPERATURE",
    "SUGGESTION_SYSTEM_PROMPT",
    "PDF_DIRECTORY",
    "SERVER_HOST",
    "SERVER_PORT",
    "VERBOSE_LOG_CAPTURE_ENABLED",
    "VERBOSE_LOG_DIRECTORY",
]
