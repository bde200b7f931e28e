"""HTTP API for the PDF library, credential issuance and suggestions.

Routes:
- GET  /api/pdfs                 list stored PDFs, newest first
- GET  /api/pdfs/{name}          stream one PDF inline
- POST /api/pdfs/{name}/save     overwrite an existing PDF (multipart ``file``)
- POST /api/upload               store a new PDF (multipart ``file``)
- GET  /api/session              mint an ephemeral transcription credential
- POST /api/suggestions          form-filling suggestion for the focused field
"""

from __future__ import annotations

import asyncio
from typing import Optional
from urllib.parse import unquote

from aiohttp import web
from openai import OpenAIError

from pdf_assistant.assistant.suggestions import SuggestionClient, SuggestionRequest
from pdf_assistant.cli.logging_utils import ERROR_LOG_LABEL, LOGGER, SERVER_LOG_LABEL
from pdf_assistant.core.exceptions import CredentialError, InvalidPdfError, PdfNotFoundError
from pdf_assistant.network.credentials import EphemeralCredentialClient
from pdf_assistant.storage.pdf_library import PDF_CONTENT_TYPE, PdfLibrary

MAX_UPLOAD_BYTES = 50 * 1024 * 1024

LIBRARY_KEY = web.AppKey("library", PdfLibrary)
CREDENTIAL_CLIENT_KEY = web.AppKey("credential_client", EphemeralCredentialClient)
SUGGESTION_CLIENT_KEY = web.AppKey("suggestion_client", SuggestionClient)


def _error(message: str, status: int, **extra: str) -> web.Response:
    return web.json_response({"error": message, **extra}, status=status)


async def _read_pdf_field(request: web.Request) -> Optional[web.FileField]:
    form = await request.post()
    field = form.get("file")
    return field if isinstance(field, web.FileField) else None


async def list_pdfs_handler(request: web.Request) -> web.Response:
    library = request.app[LIBRARY_KEY]
    try:
        records = await asyncio.to_thread(library.list_pdfs)
    except OSError as exc:
        LOGGER.log(ERROR_LOG_LABEL, f"Error listing PDFs: {exc}", error=True)
        return _error("Failed to list PDFs", 500)
    return web.json_response({"pdfs": [record.to_json() for record in records]})


async def read_pdf_handler(request: web.Request) -> web.Response:
    library = request.app[LIBRARY_KEY]
    try:
        filename, contents = await asyncio.to_thread(library.read, request.match_info["name"])
    except (PdfNotFoundError, InvalidPdfError):
        return _error("PDF not found", 404)
    except OSError as exc:
        LOGGER.log(ERROR_LOG_LABEL, f"Error serving PDF: {exc}", error=True)
        return _error("Failed to serve PDF", 500)

    return web.Response(
        body=contents,
        content_type=PDF_CONTENT_TYPE,
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


async def save_pdf_handler(request: web.Request) -> web.Response:
    library = request.app[LIBRARY_KEY]
    name = request.match_info["name"]
    try:
        if not await asyncio.to_thread(library.exists, name):
            return _error("Original PDF not found", 404)
    except InvalidPdfError:
        return _error("Original PDF not found", 404)

    field = await _read_pdf_field(request)
    if field is None:
        return _error("No PDF data provided", 400)

    try:
        filename = await asyncio.to_thread(
            library.save, name, field.file.read(), field.content_type
        )
    except InvalidPdfError as exc:
        return _error(str(exc), 400)
    except PdfNotFoundError:
        return _error("Original PDF not found", 404)
    except OSError as exc:
        LOGGER.log(ERROR_LOG_LABEL, f"Save error: {exc}", error=True)
        return _error("Failed to save PDF", 500)

    return web.json_response({"message": "PDF saved successfully", "filename": filename})


async def upload_pdf_handler(request: web.Request) -> web.Response:
    library = request.app[LIBRARY_KEY]
    field = await _read_pdf_field(request)
    if field is None:
        return _error("No file uploaded", 400)

    # Some clients percent-encode the multipart filename.
    original_name = unquote(field.filename or "")
    try:
        filename = await asyncio.to_thread(
            library.upload, original_name, field.file.read(), field.content_type
        )
    except InvalidPdfError as exc:
        return _error(str(exc), 400)
    except OSError as exc:
        LOGGER.log(ERROR_LOG_LABEL, f"Upload error: {exc}", error=True)
        return _error("Upload failed", 500)

    return web.json_response(
        {
            "message": "File uploaded successfully",
            "filename": filename,
            "originalName": original_name,
        }
    )


async def session_handler(request: web.Request) -> web.Response:
    credential_client = request.app[CREDENTIAL_CLIENT_KEY]
    try:
        data = await credential_client.request_session()
    except CredentialError as exc:
        LOGGER.log(ERROR_LOG_LABEL, f"Error in /session: {exc}", error=True)
        return _error("Internal Server Error", 500)
    return web.json_response(data)


async def suggestions_handler(request: web.Request) -> web.Response:
    suggestion_client = request.app[SUGGESTION_CLIENT_KEY]
    try:
        payload = await request.json()
    except ValueError:
        return _error("Request body must be JSON", 400)
    if not isinstance(payload, dict):
        return _error("Request body must be a JSON object", 400)

    suggestion_request = SuggestionRequest.from_payload(payload)
    try:
        suggestion_request.validate()
    except ValueError as exc:
        return _error(str(exc), 400)

    try:
        suggestion = await suggestion_client.suggest(suggestion_request)
    except OpenAIError as exc:
        LOGGER.log(ERROR_LOG_LABEL, f"Error in /suggestions: {exc}", error=True)
        return _error("Internal Server Error", 500, details=str(exc))

    return web.json_response({"suggestion": suggestion, "success": True})


def create_app(
    *,
    library: Optional[PdfLibrary] = None,
    credential_client: Optional[EphemeralCredentialClient] = None,
    suggestion_client: Optional[SuggestionClient] = None,
) -> web.Application:
    app = web.Application(client_max_size=MAX_UPLOAD_BYTES)
    app[LIBRARY_KEY] = library or PdfLibrary()
    # The proxy always mints directly; never point it back at itself.
    app[CREDENTIAL_CLIENT_KEY] = credential_client or EphemeralCredentialClient(
        credential_url=None
    )
    app[SUGGESTION_CLIENT_KEY] = suggestion_client or SuggestionClient()

    app.router.add_get("/api/pdfs", list_pdfs_handler)
    app.router.add_get("/api/pdfs/{name}", read_pdf_handler)
    app.router.add_post("/api/pdfs/{name}/save", save_pdf_handler)
    app.router.add_post("/api/upload", upload_pdf_handler)
    app.router.add_get("/api/session", session_handler)
    app.router.add_post("/api/suggestions", suggestions_handler)
    return app


async def start_server(app: web.Application, host: str, port: int) -> web.AppRunner:
    """Start the HTTP API and return the runner so callers can clean it up."""

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    LOGGER.log(SERVER_LOG_LABEL, f"HTTP API available at http://{host}:{port}/api")
    return runner


__all__ = ["create_app", "start_server"]
