import asyncio
import json
from typing import Any

import aiohttp
import pytest

from pdf_assistant.core.exceptions import CredentialError
from pdf_assistant.network.credentials import EphemeralCredentialClient, extract_client_secret

SESSION_RESPONSE = {"id": "sess_123", "client_secret": {"value": "ek_abc", "expires_at": 1}}


class FakeResponse:
    def __init__(self, status: int = 200, body: Any = None, text: str | None = None):
        self.status = status
        self._body = body
        self._text = text if text is not None else json.dumps(body)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def text(self) -> str:
        return self._text

    async def json(self, content_type=None):
        return json.loads(self._text)


class FakeSession:
    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.requests: list[tuple[str, str, dict[str, Any]]] = []
        self.timeout = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def request(self, method: str, url: str, **kwargs):
        self.requests.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def _factory(session: FakeSession):
    def _make(*, timeout=None):
        session.timeout = timeout
        return session

    return _make


def _client(session: FakeSession, **kwargs) -> EphemeralCredentialClient:
    kwargs.setdefault("credential_url", None)
    kwargs.setdefault("api_key", "sk-test")
    return EphemeralCredentialClient(session_factory=_factory(session), **kwargs)


def test_extract_client_secret():
    assert extract_client_secret(SESSION_RESPONSE) == "ek_abc"
    assert extract_client_secret({"client_secret": {}}) is None
    assert extract_client_secret({"client_secret": "flat"}) is None
    assert extract_client_secret([]) is None


@pytest.mark.asyncio
async def test_fetch_credential_mints_session_with_api_key():
    session = FakeSession(FakeResponse(body=SESSION_RESPONSE))
    client = _client(session, endpoint="https://example.test/sessions", timeout_seconds=3.0)

    credential = await client.fetch_credential()

    assert credential == "ek_abc"
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("POST", "https://example.test/sessions")
    assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
    assert kwargs["headers"]["OpenAI-Beta"] == "assistants=v2"
    assert kwargs["json"]["input_audio_format"] == "pcm16"
    assert kwargs["json"]["turn_detection"]["silence_duration_ms"] == 800
    assert session.timeout.total == 3.0


@pytest.mark.asyncio
async def test_fetch_credential_uses_proxy_when_configured():
    session = FakeSession(FakeResponse(body=SESSION_RESPONSE))
    client = _client(session, credential_url="http://localhost:3000/api/session", api_key=None)

    assert await client.fetch_credential() == "ek_abc"
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("GET", "http://localhost:3000/api/session")
    assert kwargs == {}


@pytest.mark.asyncio
async def test_fetch_credential_logs_request_and_response(monkeypatch):
    records: list[str] = []
    monkeypatch.setattr(
        "pdf_assistant.network.credentials.LOGGER.verbose",
        lambda source, message, **kwargs: records.append(message),
    )
    session = FakeSession(FakeResponse(body=SESSION_RESPONSE))

    await _client(session).fetch_credential()

    assert records[0].startswith("fetch_session_token_request")
    assert records[1].startswith("fetch_session_token_response")


@pytest.mark.asyncio
async def test_missing_client_secret_raises():
    session = FakeSession(FakeResponse(body={"id": "sess_123"}))

    with pytest.raises(CredentialError, match="No ephemeral key provided by the server"):
        await _client(session).fetch_credential()


@pytest.mark.asyncio
async def test_non_success_status_raises_with_body():
    session = FakeSession(FakeResponse(status=401, text="invalid api key"))

    with pytest.raises(CredentialError, match="401 - invalid api key"):
        await _client(session).fetch_credential()


@pytest.mark.asyncio
async def test_invalid_json_raises():
    session = FakeSession(FakeResponse(text="<html>"))

    with pytest.raises(CredentialError, match="not valid JSON"):
        await _client(session).fetch_credential()


@pytest.mark.asyncio
async def test_network_failure_raises_credential_error():
    session = FakeSession(error=aiohttp.ClientConnectionError("refused"))

    with pytest.raises(CredentialError, match="refused"):
        await _client(session).fetch_credential()


@pytest.mark.asyncio
async def test_timeout_raises_credential_error():
    session = FakeSession(error=asyncio.TimeoutError())

    with pytest.raises(CredentialError):
        await _client(session).fetch_credential()


@pytest.mark.asyncio
async def test_request_session_requires_api_key():
    session = FakeSession(FakeResponse(body=SESSION_RESPONSE))

    with pytest.raises(CredentialError, match="OPENAI_API_KEY not configured"):
        await _client(session, api_key=None).request_session()

    assert session.requests == []


@pytest.mark.asyncio
async def test_request_session_returns_raw_json():
    session = FakeSession(FakeResponse(body=SESSION_RESPONSE))

    assert await _client(session).request_session() == SESSION_RESPONSE
