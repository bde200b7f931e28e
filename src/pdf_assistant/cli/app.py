"""
Real-time speech-to-text transcription for the PDF form assistant
Streams microphone audio to OpenAI's Realtime API and serves the HTTP API
"""

import argparse
import asyncio
import sys
from functools import partial
from typing import Optional

from pdf_assistant.assistant import RealtimeTranscriptionSession
from pdf_assistant.cli.events import handle_transcription_event
from pdf_assistant.cli.logging_utils import (
    ERROR_LOG_LABEL,
    LOGGER,
    SESSION_LOG_LABEL,
    SERVER_LOG_LABEL,
    set_verbose_logging,
)
from pdf_assistant.config import SERVER_HOST, SERVER_PORT
from pdf_assistant.core.exceptions import TranscriptionError
from pdf_assistant.diagnostics import test_audio_capture, test_websocket_client
from pdf_assistant.server import create_app, start_server

MODES = ("transcribe", "serve", "test-audio", "test-websocket")


async def run_transcription(session: Optional[RealtimeTranscriptionSession] = None) -> str:
    """
    Main integration function - runs real-time transcription
    Fetches a credential, opens the transport and records until it closes
    """
    LOGGER.log("SYSTEM", "Starting real-time transcription")

    session = session or RealtimeTranscriptionSession(on_event=handle_transcription_event)
    async with session:
        await session.fetch_credential()
        await session.connect()
        await session.start_recording()
        LOGGER.log(SESSION_LOG_LABEL, "Listening... press Ctrl+C to stop")
        await session.wait_closed()

    if session.error:
        LOGGER.log(ERROR_LOG_LABEL, f"Session ended: {session.error}", error=True)
    else:
        LOGGER.log(SESSION_LOG_LABEL, "Session closed")
    return session.transcript


async def run_server(host: str = SERVER_HOST, port: int = SERVER_PORT, stop_event=None) -> None:
    """Serve the HTTP API until cancelled or ``stop_event`` is set."""

    runner = await start_server(create_app(), host, port)
    try:
        await (stop_event or asyncio.Event()).wait()
    finally:
        await runner.cleanup()
        LOGGER.log(SERVER_LOG_LABEL, "HTTP API stopped")


def parse_args(argv=None):
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(
        description="Realtime transcription and form-filling assistant for PDF documents."
    )
    parser.add_argument(
        "mode",
        nargs="?",
        choices=MODES,
        default="transcribe",
        help="Select an execution mode (default: transcribe)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed diagnostic logs (websocket traffic, state changes, etc.).",
    )
    parser.add_argument(
        "--host", default=SERVER_HOST, help=f"serve: bind host (default: {SERVER_HOST})"
    )
    parser.add_argument(
        "--port", type=int, default=SERVER_PORT, help=f"serve: bind port (default: {SERVER_PORT})"
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point"""

    args = parse_args(argv)
    set_verbose_logging(args.verbose)

    if args.mode == "test-audio":
        run_func = test_audio_capture
    elif args.mode == "test-websocket":
        run_func = partial(test_websocket_client, handle_transcription_event)
    elif args.mode == "serve":
        run_func = partial(run_server, args.host, args.port)
    else:
        run_func = run_transcription

    try:
        asyncio.run(run_func())
    except KeyboardInterrupt:
        LOGGER.log("SYSTEM", "Shutdown requested")
    except TranscriptionError as e:
        LOGGER.log(ERROR_LOG_LABEL, f"{type(e).__name__}: {e}", error=True)
        sys.exit(1)
    except Exception as e:
        LOGGER.log(ERROR_LOG_LABEL, f"CLI error: {e}", error=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
