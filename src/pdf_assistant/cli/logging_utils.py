"""Console logging for the CLI and HTTP service.

Every line is rendered as ``[MM:SS.mmm] [LABEL] message``. ``LOGGER.log`` always
prints; ``LOGGER.verbose`` prints only with ``--verbose`` but is still copied to
the verbose capture file when one is configured.
"""

from __future__ import annotations

import atexit
import re
import sys
import traceback
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, TextIO, TypedDict

from typing_extensions import Unpack

from pdf_assistant.config import VERBOSE_LOG_CAPTURE_ENABLED, VERBOSE_LOG_DIRECTORY

RESET = "\033[0m"

SESSION_LOG_LABEL = "SESSION"
STATE_LOG_LABEL = "STATE"
TRANSCRIPT_LOG_LABEL = "TRANSCRIPT"
AUDIO_LOG_LABEL = "AUDIO"
SUGGEST_LOG_LABEL = "SUGGEST"
STORAGE_LOG_LABEL = "STORAGE"
SERVER_LOG_LABEL = "SERVER"
ERROR_LOG_LABEL = "ERROR"
WS_LOG_LABEL = "WS"

_LABEL_COLORS = {
    SESSION_LOG_LABEL: "\033[38;5;208m",
    STATE_LOG_LABEL: "\033[36m",
    TRANSCRIPT_LOG_LABEL: "\033[32m",
    AUDIO_LOG_LABEL: "\033[34m",
    SUGGEST_LOG_LABEL: "\033[35m",
    STORAGE_LOG_LABEL: "\033[33m",
    SERVER_LOG_LABEL: "\033[35m",
    ERROR_LOG_LABEL: "\033[31m",
    WS_LOG_LABEL: "\033[37m",
    f"{WS_LOG_LABEL}←": "\033[37m",
    f"{WS_LOG_LABEL}→": "\033[37m",
}

ANSI_ESCAPE_RE = re.compile(r"\x1B\[[0-?]*[ -/]*[@-~]")
MAX_SESSION_LOG_COLLISIONS = 1000


class LogOptions(TypedDict, total=False):
    sep: str
    end: str
    verbose: bool
    error: bool
    flush: bool
    color: Optional[str]
    exc_info: bool | BaseException


def strip_ansi_sequences(text: str) -> str:
    """Return *text* with ANSI escape codes removed."""

    return ANSI_ESCAPE_RE.sub("", text)


def _format_traceback(exc_info: bool | BaseException | None) -> Optional[str]:
    if isinstance(exc_info, BaseException):
        return "".join(traceback.format_exception(exc_info)).rstrip()
    if exc_info is True:
        current = sys.exc_info()[1]
        if current is not None:
            return "".join(traceback.format_exception(current)).rstrip()
        return None
    if exc_info in (None, False):
        return None
    raise TypeError("exc_info must be True or an exception instance")


class _CaptureFile:
    """Append-only plain-text copy of verbose output."""

    def __init__(self) -> None:
        self.path: Optional[Path] = None
        self._handle: Optional[TextIO] = None
        self._failed = False

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def open(self, destination: Path, *, per_session: bool) -> None:
        self.close()
        try:
            if per_session:
                destination.mkdir(parents=True, exist_ok=True)
                path = self._claim_session_file(destination)
            else:
                destination.parent.mkdir(parents=True, exist_ok=True)
                path = destination
            self._handle = path.open("a", encoding="utf-8")
        except OSError as exc:
            self._report(f"Unable to open verbose log file at {destination}: {exc}")
            return
        self.path = path
        self._failed = False

    def write(self, line: str, end: str) -> None:
        if self._handle is None:
            return
        try:
            self._handle.write(strip_ansi_sequences(line) + end)
            self._handle.flush()
        except OSError as exc:
            self._report(f"Unable to write to verbose log file: {exc}")

    def close(self) -> None:
        handle, self._handle, self.path = self._handle, None, None
        if handle is not None:
            try:
                handle.close()
            except OSError:
                pass

    def _report(self, message: str) -> None:
        if not self._failed:
            sys.stderr.write(message + "\n")
            self._failed = True

    @staticmethod
    def _claim_session_file(directory: Path) -> Path:
        stamp = datetime.now().isoformat(timespec="milliseconds").replace(":", "-")
        candidates = [directory / f"{stamp}.log"] + [
            directory / f"{stamp}_{counter}.log"
            for counter in range(1, MAX_SESSION_LOG_COLLISIONS + 1)
        ]
        for candidate in candidates:
            try:
                with candidate.open("x", encoding="utf-8"):
                    return candidate
            except FileExistsError:
                continue
        raise OSError(f"no free log file name for {stamp} in {directory}")


class Logger:
    """Centralized logger that enforces `[timestamp] [source] message` output."""

    def __init__(self) -> None:
        self._verbose_logging = False
        self._capture = _CaptureFile()
        # Per-session capture from the environment opens lazily on first verbose line.
        self._pending_capture_dir = (
            VERBOSE_LOG_DIRECTORY if VERBOSE_LOG_CAPTURE_ENABLED else None
        )

    def close(self) -> None:
        self._capture.close()

    def configure_verbose_log_capture(
        self, destination: str | Path | None, *, per_session: bool = False
    ) -> None:
        self._pending_capture_dir = None
        self._capture.close()
        if destination is not None:
            self._capture.open(Path(destination), per_session=per_session)

    def set_verbose_logging(self, enabled: bool) -> None:
        self._verbose_logging = bool(enabled)

    def is_verbose_logging_enabled(self) -> bool:
        return self._verbose_logging

    def current_verbose_log_path(self) -> Optional[Path]:
        self._open_pending_capture()
        return self._capture.path

    def log(self, source: str, *message_parts: object, **options: Unpack[LogOptions]) -> None:
        if not source:
            raise ValueError("source is required")

        label = source.strip()
        sep = options.pop("sep", " ")
        end = options.pop("end", "\n")
        verbose = bool(options.pop("verbose", False))
        error = bool(options.pop("error", False))
        flush = bool(options.pop("flush", False))
        color = options.pop("color", None)
        exc_info = options.pop("exc_info", None)
        if options:
            raise TypeError(f"Unsupported log option(s): {', '.join(sorted(options))}")

        if verbose:
            self._open_pending_capture()
        to_file = verbose and self._capture.is_open
        to_console = not verbose or self._verbose_logging
        if not (to_file or to_console):
            return

        line = self._render(label, sep.join(str(part) for part in message_parts))
        details = _format_traceback(exc_info)
        if details:
            line = f"{line}\n{details}"

        if to_file:
            self._capture.write(line, end)
        if to_console:
            color_code = color if color is not None else _LABEL_COLORS.get(label)
            if color_code:
                line = line.replace(f"[{label}]", f"{color_code}[{label}]{RESET}", 1)
            stream = sys.stderr if error else sys.stdout
            stream.write(line + end)
            if flush:
                stream.flush()

    def verbose(self, source: str, *message_parts: object, **options: Unpack[LogOptions]) -> None:
        options["verbose"] = True
        self.log(source, *message_parts, **options)

    def _open_pending_capture(self) -> None:
        directory, self._pending_capture_dir = self._pending_capture_dir, None
        if directory is not None:
            self._capture.open(directory, per_session=True)

    @staticmethod
    def _render(label: str, message: str) -> str:
        now = datetime.now()
        prefix = f"[{now:%M:%S}.{now.microsecond // 1000:03d}] [{label}]"
        return f"{prefix} {message}" if message else prefix


LOGGER = Logger()
atexit.register(LOGGER.close)


def configure_verbose_log_capture(
    destination: str | Path | None, *, per_session: bool = False
) -> None:
    LOGGER.configure_verbose_log_capture(destination, per_session=per_session)


def set_verbose_logging(enabled: bool) -> None:
    LOGGER.set_verbose_logging(enabled)


def is_verbose_logging_enabled() -> bool:
    return LOGGER.is_verbose_logging_enabled()


def current_verbose_log_path() -> Optional[Path]:
    return LOGGER.current_verbose_log_path()


def ws_log_label(direction: str | None = None) -> str:
    """WS label, suffixed with ← (inbound) or → (outbound) when given."""

    return f"{WS_LOG_LABEL}{direction}" if direction in ("←", "→") else WS_LOG_LABEL


def log_state_transition(previous: Optional[Enum], new: Enum, reason: str) -> None:
    if previous == new:
        return

    target = str(new.value).upper()
    if previous is None:
        LOGGER.verbose(STATE_LOG_LABEL, f"Entered {target} ({reason})")
    else:
        LOGGER.verbose(STATE_LOG_LABEL, f"{str(previous.value).upper()} -> {target} ({reason})")
