"""Form-filling suggestions from the transcript, a screen frame and field focus."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from openai import AsyncOpenAI

from pdf_assistant.cli.logging_utils import LOGGER, SUGGEST_LOG_LABEL
from pdf_assistant.config import (
    OPENAI_API_KEY,
    SUGGESTION_MAX_TOKENS,
    SUGGESTION_MODEL,
    SUGGESTION_SYSTEM_PROMPT,
    SUGGESTION_TEMPERATURE,
)

NO_SUGGESTION = "NO_SUGGESTION"
CLOSING_PROMPT = (
    "Based on the context above, what suggestions do you have for editing the current "
    "form field? Provide specific, actionable advice."
)


@dataclass
class SuggestionRequest:
    """Context sent to the model; at least a transcript or a screen image is required."""

    transcript: Optional[str] = None
    screen_image: Optional[str] = None
    annotation_data: Optional[Any] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SuggestionRequest:
        return cls(
            transcript=payload.get("transcript") or None,
            screen_image=payload.get("screenImage") or None,
            annotation_data=payload.get("annotationData") or None,
        )

    def validate(self) -> None:
        if not self.transcript and not self.screen_image:
            raise ValueError("Either transcript or screen image is required")


@dataclass(slots=True)
class SuggestionClientConfig:
    model: str = SUGGESTION_MODEL
    system_prompt: str = SUGGESTION_SYSTEM_PROMPT
    max_tokens: int = SUGGESTION_MAX_TOKENS
    temperature: float = SUGGESTION_TEMPERATURE


def build_messages(request: SuggestionRequest, system_prompt: str) -> list[dict[str, Any]]:
    """Assemble the chat messages in context order: field, transcript, screenshot."""

    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]

    if request.annotation_data:
        context = json.dumps(request.annotation_data, indent=2)
        messages.append({"role": "user", "content": f"Current form field context: {context}"})

    if request.transcript:
        messages.append(
            {
                "role": "user",
                "content": f'Here\'s what the user has been saying: "{request.transcript}"',
            }
        )

    if request.screen_image:
        messages.append(
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Here's a screenshot of the current screen:"},
                    {"type": "image_url", "image_url": {"url": request.screen_image}},
                ],
            }
        )

    messages.append({"role": "user", "content": CLOSING_PROMPT})
    return messages


class SuggestionClient:
    """Thin wrapper around the OpenAI Chat Completions API."""

    def __init__(
        self,
        *,
        config: Optional[SuggestionClientConfig] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self._config = config or SuggestionClientConfig()
        self._client = client
        self._system_prompt = self._config.system_prompt.strip()

    def _require_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=OPENAI_API_KEY)
        return self._client

    async def suggest(self, request: SuggestionRequest) -> Optional[str]:
        """Return a short suggestion, or None when the model has nothing to offer."""

        request.validate()
        messages = build_messages(request, self._system_prompt)
        LOGGER.verbose(
            SUGGEST_LOG_LABEL,
            f"Requesting suggestion model={self._config.model} messages={len(messages)} "
            f"image={'yes' if request.screen_image else 'no'}",
        )

        response = await self._require_client().chat.completions.create(
            model=self._config.model,
            messages=messages,
            max_tokens=self._config.max_tokens,
            temperature=self._config.temperature,
        )

        suggestion = _first_choice_text(response)
        if suggestion is None:
            LOGGER.verbose(SUGGEST_LOG_LABEL, "No suggestion returned")
            return None
        LOGGER.verbose(SUGGEST_LOG_LABEL, f"Suggestion received ({len(suggestion)} chars)")
        return suggestion


def _first_choice_text(response: Any) -> Optional[str]:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if not isinstance(content, str):
        return None
    cleaned = content.strip()
    if not cleaned or cleaned == NO_SUGGESTION:
        return None
    return cleaned


__all__ = [
    "NO_SUGGESTION",
    "SuggestionClient",
    "SuggestionClientConfig",
    "SuggestionRequest",
    "build_messages",
]
