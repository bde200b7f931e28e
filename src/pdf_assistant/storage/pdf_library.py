"""Filesystem-backed PDF library: list, read, overwrite-save and upload."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pdf_assistant.cli.logging_utils import LOGGER, STORAGE_LOG_LABEL
from pdf_assistant.config import PDF_DIRECTORY
from pdf_assistant.core.exceptions import InvalidPdfError, PdfNotFoundError

PDF_CONTENT_TYPE = "application/pdf"
PDF_SUFFIX = ".pdf"

_UNSAFE_CHARS_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class PdfRecord:
    name: str
    display_name: str
    size: int
    last_modified: str

    def to_json(self) -> dict[str, object]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "size": self.size,
            "lastModified": self.last_modified,
        }


def make_url_safe(filename: str) -> str:
    """Lower-case the stem and collapse anything non-alphanumeric into single hyphens."""

    path = Path(filename)
    safe_stem = _UNSAFE_CHARS_RE.sub("-", path.stem.lower()).strip("-")
    return f"{safe_stem}{path.suffix}"


def display_name_for(filename: str) -> str:
    return re.sub(r"\.pdf$", "", filename, flags=re.IGNORECASE).replace("-", " ")


def _normalize_pdf_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned or "/" in cleaned or "\\" in cleaned or cleaned in (".", ".."):
        raise InvalidPdfError(f"Invalid PDF name: {name!r}")
    return cleaned if cleaned.endswith(PDF_SUFFIX) else f"{cleaned}{PDF_SUFFIX}"


def _require_pdf_content_type(content_type: Optional[str]) -> None:
    if content_type != PDF_CONTENT_TYPE:
        raise InvalidPdfError("Only PDF files are allowed")


class PdfLibrary:
    """PDFs stored as flat files in one directory."""

    def __init__(self, directory: Path | str = PDF_DIRECTORY):
        self.directory = Path(directory)

    def path_for(self, name: str) -> Path:
        return self.directory / _normalize_pdf_name(name)

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def list_pdfs(self) -> list[PdfRecord]:
        """Return every PDF in the library, newest first."""

        if not self.directory.exists():
            return []

        records: list[tuple[float, PdfRecord]] = []
        for entry in self.directory.iterdir():
            if not entry.is_file() or not entry.name.lower().endswith(PDF_SUFFIX):
                continue
            stats = entry.stat()
            modified = datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc)
            record = PdfRecord(
                name=entry.name,
                display_name=display_name_for(entry.name),
                size=stats.st_size,
                last_modified=modified.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            )
            records.append((stats.st_mtime, record))

        records.sort(key=lambda item: item[0], reverse=True)
        return [record for _, record in records]

    def read(self, name: str) -> tuple[str, bytes]:
        """Return ``(filename, contents)`` for an existing PDF."""

        path = self.path_for(name)
        if not path.is_file():
            raise PdfNotFoundError("PDF not found")
        return path.name, path.read_bytes()

    def save(self, name: str, data: bytes, content_type: Optional[str]) -> str:
        """Overwrite an existing PDF; saving never creates a new file."""

        path = self.path_for(name)
        if not path.is_file():
            raise PdfNotFoundError("Original PDF not found")
        _require_pdf_content_type(content_type)

        path.write_bytes(data)
        LOGGER.verbose(STORAGE_LOG_LABEL, f"Saved {path.name} ({len(data)} bytes)")
        return path.name

    def upload(self, filename: str, data: bytes, content_type: Optional[str]) -> str:
        """Store a new PDF under a URL-safe name and return that name."""

        _require_pdf_content_type(content_type)
        safe_name = make_url_safe(Path(filename).name)
        if not safe_name or safe_name.startswith("."):
            raise InvalidPdfError(f"Invalid PDF name: {filename!r}")

        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / safe_name
        path.write_bytes(data)
        LOGGER.verbose(STORAGE_LOG_LABEL, f"Uploaded {filename!r} as {safe_name}")
        return safe_name


__all__ = [
    "PDF_CONTENT_TYPE",
    "PdfLibrary",
    "PdfRecord",
    "display_name_for",
    "make_url_safe",
]
