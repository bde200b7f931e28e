"""Accumulates streamed transcript fragments into a single text buffer."""

from __future__ import annotations

UTTERANCE_SEPARATOR = "\n"


class TranscriptBuffer:
    """Append-only transcript; grows until explicitly cleared."""

    def __init__(self) -> None:
        self._fragments: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._fragments)

    def append_delta(self, fragment: str) -> None:
        """Extend the current utterance with no separator."""

        if fragment:
            self._fragments.append(fragment)

    def append_completed(self, fragment: str) -> None:
        """Record a finalized utterance, preceded by a newline boundary."""

        if fragment:
            self._fragments.append(UTTERANCE_SEPARATOR + fragment)

    def clear(self) -> None:
        self._fragments.clear()

    def __len__(self) -> int:
        return sum(len(fragment) for fragment in self._fragments)


__all__ = ["TranscriptBuffer", "UTTERANCE_SEPARATOR"]
