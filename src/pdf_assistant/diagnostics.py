"""
Helper routines for validating hardware and connectivity outside the main
transcription loop.
"""

import asyncio
import sys

from pdf_assistant.audio import AudioCapture
from pdf_assistant.config import BLOCK_SIZE, CHANNELS, SAMPLE_RATE
from pdf_assistant.network import EphemeralCredentialClient, RealtimeWebSocketClient
from pdf_assistant.network.protocol import session_update_event

CAPTURE_TEST_SECONDS = 5.0
MAX_TEST_EVENTS = 10


async def test_audio_capture(capture=None, duration: float = CAPTURE_TEST_SECONDS):
    """Capture audio for a short window to verify microphone + sounddevice setup."""
    print("\n=== Audio Capture Test ===\n")

    capture = capture or AudioCapture()
    loop = asyncio.get_running_loop()
    blocks: asyncio.Queue[bytes] = asyncio.Queue()
    capture.start_stream(loop, blocks.put_nowait)

    print(f"\nCapturing audio for {duration:g} seconds...")
    print("(Speak into your microphone or make some noise)\n")

    block_count = 0
    total_bytes = 0

    try:
        start_time = loop.time()
        while loop.time() - start_time < duration:
            try:
                pcm_bytes = await asyncio.wait_for(blocks.get(), timeout=1.0)
            except asyncio.TimeoutError:
                print("Warning: No audio data received (timeout)")
                break
            block_count += 1
            total_bytes += len(pcm_bytes)

            if block_count % 10 == 0:
                print(f"Captured {block_count} blocks, {total_bytes:,} bytes")

    finally:
        capture.stop_stream()

        print("\n=== Test Complete ===")
        print(f"Total blocks: {block_count}")
        print(f"Total bytes: {total_bytes:,}")
        print(f"Expected bytes per block: {BLOCK_SIZE * CHANNELS * 2}")
        print(f"Audio format verified: {SAMPLE_RATE}Hz, {CHANNELS} channel(s), 16-bit PCM")

    return block_count, total_bytes


async def test_websocket_client(event_handler=None, *, credential_client=None, ws_client=None):
    """Connect to OpenAI and stream back any events for quick validation."""
    print("\n=== WebSocket Client Test ===\n")

    credential_client = credential_client or EphemeralCredentialClient()
    ws_client = ws_client or RealtimeWebSocketClient()
    event_count = 0

    try:
        credential = await credential_client.fetch_credential()
        print("✓ Ephemeral credential acquired")

        await ws_client.connect(credential)
        await ws_client.send_event(session_update_event())

        print("\n✓ Connection successful")
        print("✓ Session configuration sent")
        print(f"\nListening for events (up to {MAX_TEST_EVENTS} messages)...\n")

        async for event in ws_client.receive_events():
            event_count += 1
            if event_handler:
                event_handler(event)
            else:
                print(event)

            if event_count >= MAX_TEST_EVENTS:
                break

        print("\n=== Test Complete ===")
        print(f"Total events received: {event_count}")

    except Exception as e:
        print(f"Test failed: {e}", file=sys.stderr)
        raise

    finally:
        await ws_client.close()

    return event_count


if __name__ == "__main__":
    print("Run individual tests via `pdf-assistant test-audio` or `pdf-assistant test-websocket`.")
