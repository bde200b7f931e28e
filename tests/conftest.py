import os

import pytest

_TEST_ENV_DEFAULTS = {
    "OPENAI_API_KEY": "test-key",
    "VERBOSE_LOG_CAPTURE_ENABLED": "0",
}

# Settings that would point tests at real devices or a live credential proxy.
_TEST_ENV_UNSET = (
    "CREDENTIAL_URL",
    "AUDIO_INPUT_DEVICE",
    "TRANSCRIPTION_MODEL",
    "TRANSCRIPTION_LANGUAGE",
)

for key, value in _TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(key, value)
for key in _TEST_ENV_UNSET:
    os.environ.pop(key, None)


@pytest.fixture(autouse=True)
def set_test_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep critical environment variables stable across tests."""

    for key, value in _TEST_ENV_DEFAULTS.items():
        monkeypatch.setenv(key, value)
    for key in _TEST_ENV_UNSET:
        monkeypatch.delenv(key, raising=False)
