import asyncio
import json

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from pdf_assistant.core.exceptions import SessionConnectionError
from pdf_assistant.network.protocol import audio_append_event, session_update_event
from pdf_assistant.network.websocket_client import (
    RealtimeWebSocketClient,
    realtime_subprotocols,
)


class DummyWebSocket:
    def __init__(self, incoming: list[str] | None = None, close_error: Exception | None = None):
        self._incoming: asyncio.Queue[str] = asyncio.Queue()
        for message in incoming or []:
            self._incoming.put_nowait(message)
        self._close_error = close_error
        self.sent: list[str] = []
        self.closed = False

    def __aiter__(self) -> "DummyWebSocket":
        return self

    async def __anext__(self) -> str:
        if self._incoming.empty():
            if self._close_error is not None:
                raise self._close_error
            raise StopAsyncIteration
        return await self._incoming.get()

    async def send(self, payload: str) -> None:
        self.sent.append(payload)

    async def close(self) -> None:
        self.closed = True


class FakeConnector:
    def __init__(self, websocket=None, error: Exception | None = None):
        self.websocket = websocket or DummyWebSocket()
        self.error = error
        self.calls: list[tuple[tuple, dict]] = []

    async def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        if self.error is not None:
            raise self.error
        return self.websocket


def _client(connector: FakeConnector) -> RealtimeWebSocketClient:
    return RealtimeWebSocketClient(endpoint="wss://example.test/realtime", connector=connector)


@pytest.fixture
def verbose_capture(monkeypatch):
    records: list[tuple[str, str]] = []

    def _capture(source, message, **kwargs):
        records.append((source, message))

    monkeypatch.setattr("pdf_assistant.network.websocket_client.LOGGER.verbose", _capture)
    return records


def test_realtime_subprotocols_carry_credential():
    assert realtime_subprotocols("ek_abc") == [
        "realtime",
        "openai-insecure-api-key.ek_abc",
        "openai-beta.realtime-v1",
    ]


@pytest.mark.asyncio
async def test_connect_authenticates_via_subprotocols():
    connector = FakeConnector()
    client = _client(connector)

    await client.connect("ek_abc")

    assert client.connected is True
    args, kwargs = connector.calls[0]
    assert args == ("wss://example.test/realtime",)
    assert kwargs["subprotocols"][1] == "openai-insecure-api-key.ek_abc"
    # No auth message is sent by the transport itself.
    assert connector.websocket.sent == []


@pytest.mark.asyncio
async def test_connect_rejects_second_socket():
    connector = FakeConnector()
    client = _client(connector)
    await client.connect("ek_abc")

    with pytest.raises(SessionConnectionError, match="connection already open"):
        await client.connect("ek_other")

    assert len(connector.calls) == 1


@pytest.mark.asyncio
async def test_connect_failure_raises_session_connection_error():
    client = _client(FakeConnector(error=OSError("network unreachable")))

    with pytest.raises(SessionConnectionError, match="network unreachable"):
        await client.connect("ek_abc")

    assert client.connected is False


@pytest.mark.asyncio
async def test_send_event_serializes_json():
    connector = FakeConnector()
    client = _client(connector)
    await client.connect("ek_abc")

    await client.send_event(session_update_event())

    sent = json.loads(connector.websocket.sent[0])
    assert sent["type"] == "transcription_session.update"
    assert sent["session"]["turn_detection"]["type"] == "server_vad"


@pytest.mark.asyncio
async def test_send_event_without_socket_raises():
    client = _client(FakeConnector())

    with pytest.raises(SessionConnectionError, match="WebSocket not connected"):
        await client.send_event({"type": "noop"})


@pytest.mark.asyncio
async def test_receive_events_skips_malformed_frames():
    frames = [
        json.dumps({"type": "transcription_session.created"}),
        "{not json",
        json.dumps(["not", "an", "object"]),
        json.dumps({"type": "conversation.item.input_audio_transcription.delta", "delta": "Hi"}),
    ]
    client = _client(FakeConnector(DummyWebSocket(frames)))
    await client.connect("ek_abc")

    events = [event async for event in client.receive_events()]

    assert [event["type"] for event in events] == [
        "transcription_session.created",
        "conversation.item.input_audio_transcription.delta",
    ]


@pytest.mark.asyncio
async def test_receive_events_raises_on_abnormal_close():
    error = ConnectionClosedError(None, None)
    client = _client(FakeConnector(DummyWebSocket([], close_error=error)))
    await client.connect("ek_abc")

    with pytest.raises(SessionConnectionError, match="connection lost"):
        async for _ in client.receive_events():
            pass


@pytest.mark.asyncio
async def test_receive_events_ends_quietly_on_clean_close():
    error = ConnectionClosedOK(None, None)
    frames = [json.dumps({"type": "transcription_session.updated"})]
    client = _client(FakeConnector(DummyWebSocket(frames, close_error=error)))
    await client.connect("ek_abc")

    events = [event async for event in client.receive_events()]

    assert len(events) == 1


@pytest.mark.asyncio
async def test_close_is_idempotent():
    connector = FakeConnector()
    client = _client(connector)
    await client.connect("ek_abc")

    await client.close()
    await client.close()

    assert connector.websocket.closed is True
    assert client.connected is False


@pytest.mark.asyncio
async def test_audio_payload_logs_summary_only(verbose_capture):
    connector = FakeConnector()
    client = _client(connector)
    await client.connect("ek_abc")

    await client.send_event(audio_append_event("QUJD"))

    assert ("WS→", "type=input_audio_buffer.append audio_chars=4") in verbose_capture


@pytest.mark.asyncio
async def test_transcription_payloads_are_not_logged(verbose_capture):
    frames = [
        json.dumps(
            {
                "type": "conversation.item.input_audio_transcription.completed",
                "transcript": "my secret",
            }
        )
    ]
    client = _client(FakeConnector(DummyWebSocket(frames)))
    await client.connect("ek_abc")

    [event async for event in client.receive_events()]

    assert all("my secret" not in message for _, message in verbose_capture)
    assert all(source != "WS←" for source, _ in verbose_capture)
