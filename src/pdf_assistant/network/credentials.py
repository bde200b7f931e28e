"""
Ephemeral credential acquisition for the Realtime transcription endpoint.

Either mints a transcription session directly with the OpenAI API key, or asks
a credential proxy (``CREDENTIAL_URL``, e.g. this project's ``/api/session``)
to do it on our behalf.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import aiohttp

from pdf_assistant.cli.logging_utils import ERROR_LOG_LABEL, LOGGER, SESSION_LOG_LABEL
from pdf_assistant.config import (
    CREDENTIAL_REQUEST_BODY,
    CREDENTIAL_TIMEOUT_SECONDS,
    CREDENTIAL_URL,
    OPENAI_API_KEY,
    TRANSCRIPTION_SESSIONS_BETA_HEADER,
    TRANSCRIPTION_SESSIONS_ENDPOINT,
)
from pdf_assistant.core.exceptions import CredentialError


def extract_client_secret(data: Any) -> Optional[str]:
    """Return ``client_secret.value`` from an issuance response, if present."""

    if not isinstance(data, dict):
        return None
    secret = data.get("client_secret")
    if not isinstance(secret, dict):
        return None
    value = secret.get("value")
    return value if isinstance(value, str) and value else None


class EphemeralCredentialClient:
    """Requests short-lived bearer tokens for a single Realtime connection."""

    def __init__(
        self,
        *,
        credential_url: Optional[str] = CREDENTIAL_URL,
        endpoint: str = TRANSCRIPTION_SESSIONS_ENDPOINT,
        api_key: Optional[str] = OPENAI_API_KEY,
        timeout_seconds: float = CREDENTIAL_TIMEOUT_SECONDS,
        session_factory: Callable[..., aiohttp.ClientSession] = aiohttp.ClientSession,
    ):
        self._credential_url = credential_url
        self._endpoint = endpoint
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._session_factory = session_factory

    async def fetch_credential(self) -> str:
        """
        Obtain an ephemeral credential.

        Returns:
            str: the opaque ``client_secret.value`` token

        Raises:
            CredentialError: network failure, non-success status, or a response
                without a client secret. No retry is attempted.
        """
        source = self._credential_url or self._endpoint
        LOGGER.verbose(SESSION_LOG_LABEL, f"fetch_session_token_request url={source}")

        try:
            if self._credential_url:
                data = await self._request_json("GET", self._credential_url)
            else:
                data = await self.request_session()
        except CredentialError as exc:
            LOGGER.verbose(SESSION_LOG_LABEL, f"fetch_session_token_response error={exc}")
            raise

        LOGGER.verbose(
            SESSION_LOG_LABEL,
            f"fetch_session_token_response keys={', '.join(sorted(data)) or '<none>'}",
        )

        credential = extract_client_secret(data)
        if not credential:
            LOGGER.log(ERROR_LOG_LABEL, "No ephemeral key provided by the server", error=True)
            raise CredentialError("No ephemeral key provided by the server")
        return credential

    async def request_session(self) -> dict[str, Any]:
        """Mint a transcription session with the OpenAI API and return the raw JSON."""

        if not self._api_key:
            raise CredentialError("OPENAI_API_KEY not configured")

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": TRANSCRIPTION_SESSIONS_BETA_HEADER,
        }
        return await self._request_json(
            "POST", self._endpoint, headers=headers, json=CREDENTIAL_REQUEST_BODY
        )

    async def _request_json(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
        try:
            async with self._session_factory(timeout=timeout) as session:
                async with session.request(method, url, **kwargs) as response:
                    if not 200 <= response.status < 300:
                        error_text = await response.text()
                        raise CredentialError(
                            f"Failed to get ephemeral token: {response.status} - {error_text}"
                        )
                    try:
                        data = await response.json(content_type=None)
                    except ValueError as exc:
                        raise CredentialError("Credential response was not valid JSON") from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise CredentialError(f"Credential request failed: {exc}") from exc

        if not isinstance(data, dict):
            raise CredentialError("Credential response was not a JSON object")
        return data


__all__ = ["EphemeralCredentialClient", "extract_client_secret"]
