import json
from types import SimpleNamespace

import pytest

from pdf_assistant.assistant.suggestions import (
    CLOSING_PROMPT,
    NO_SUGGESTION,
    SuggestionClient,
    SuggestionClientConfig,
    SuggestionRequest,
    build_messages,
)

SCREEN_IMAGE = "data:image/jpeg;base64,/9j/AAAA"


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _fake_openai(content):
    completions = FakeCompletions(content)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_from_payload_maps_camel_case_keys():
    request = SuggestionRequest.from_payload(
        {"transcript": "hi", "screenImage": SCREEN_IMAGE, "annotationData": {"field": "name"}}
    )

    assert request.transcript == "hi"
    assert request.screen_image == SCREEN_IMAGE
    assert request.annotation_data == {"field": "name"}


def test_validate_requires_transcript_or_image():
    with pytest.raises(ValueError, match="Either transcript or screen image is required"):
        SuggestionRequest(annotation_data={"field": "name"}).validate()

    SuggestionRequest(screen_image=SCREEN_IMAGE).validate()


def test_build_messages_orders_context():
    request = SuggestionRequest(
        transcript="my name is Ada",
        screen_image=SCREEN_IMAGE,
        annotation_data={"fieldName": "full_name"},
    )

    messages = build_messages(request, "system prompt")

    assert [message["role"] for message in messages] == [
        "system",
        "user",
        "user",
        "user",
        "user",
    ]
    assert messages[0]["content"] == "system prompt"
    assert json.dumps({"fieldName": "full_name"}, indent=2) in messages[1]["content"]
    assert '"my name is Ada"' in messages[2]["content"]
    assert messages[3]["content"][1] == {"type": "image_url", "image_url": {"url": SCREEN_IMAGE}}
    assert messages[4]["content"] == CLOSING_PROMPT


def test_build_messages_skips_missing_parts():
    messages = build_messages(SuggestionRequest(transcript="hello"), "prompt")

    assert len(messages) == 3
    assert messages[-1]["content"] == CLOSING_PROMPT


@pytest.mark.asyncio
async def test_suggest_returns_trimmed_text_and_uses_config():
    client, completions = _fake_openai("  Enter your full legal name.  ")
    config = SuggestionClientConfig(model="gpt-test", max_tokens=42, temperature=0.1)
    suggestions = SuggestionClient(config=config, client=client)

    result = await suggestions.suggest(SuggestionRequest(transcript="what goes here?"))

    assert result == "Enter your full legal name."
    call = completions.calls[0]
    assert call["model"] == "gpt-test"
    assert call["max_tokens"] == 42
    assert call["temperature"] == 0.1
    assert call["messages"][0]["role"] == "system"


@pytest.mark.asyncio
async def test_suggest_maps_sentinel_to_none():
    client, _ = _fake_openai(NO_SUGGESTION)

    result = await SuggestionClient(client=client).suggest(SuggestionRequest(transcript="um"))

    assert result is None


@pytest.mark.asyncio
async def test_suggest_maps_empty_content_to_none():
    client, _ = _fake_openai(None)

    result = await SuggestionClient(client=client).suggest(SuggestionRequest(transcript="um"))

    assert result is None


@pytest.mark.asyncio
async def test_suggest_rejects_empty_request_without_calling_api():
    client, completions = _fake_openai("ignored")

    with pytest.raises(ValueError):
        await SuggestionClient(client=client).suggest(SuggestionRequest())

    assert completions.calls == []
