"""FastAPI application served to the phone for one upload session."""
import inspect
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import ClientDisconnect

from napkin_notes.config import DEFAULT_FALLBACK_FILENAME
from napkin_notes.errors import FileTooLargeError, UploadParseError
from napkin_notes.server.multipart import iter_upload_events
from napkin_notes.server.tokens import tokens_match
from napkin_notes.types import ConnectionInfo, UploadEvent

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

UploadCallback = Callable[[UploadEvent], Union[None, Awaitable[Any]]]
ConnectCallback = Callable[[ConnectionInfo], Union[None, Awaitable[Any]]]


async def _call(callback: Callable[[Any], Any], arg: Any) -> None:
    result = callback(arg)
    if inspect.isawaitable(result):
        await result


def create_app(
    token: str,
    on_upload: UploadCallback,
    on_connect: Optional[ConnectCallback] = None,
    *,
    fallback_filename: str = DEFAULT_FALLBACK_FILENAME,
    max_file_size: Optional[int] = None,
    on_activity: Optional[Callable[[], None]] = None,
) -> FastAPI:
    """
    Build the request handler for one session.

    Every request passes through ``guard``: CORS headers always, OPTIONS
    answered without a token, and anything else without the exact session
    token is refused with 403 before routing.
    """
    app = FastAPI(title="Napkin Notes Upload", docs_url=None, redoc_url=None, openapi_url=None)

    @app.middleware("http")
    async def guard(request: Request, call_next):
        if request.method == "OPTIONS":
            response = Response(status_code=200)
        elif not tokens_match(request.query_params.get("token", ""), token):
            logger.warning(
                "Rejected %s %s from %s: bad token",
                request.method,
                request.url.path,
                request.client.host if request.client else "unknown",
            )
            response = PlainTextResponse("Forbidden", status_code=403)
        else:
            if on_activity is not None:
                on_activity()
            response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        # Unknown paths and wrong methods on known paths look the same to the client
        if exc.status_code in (404, 405):
            return PlainTextResponse("Not found", status_code=404)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.get("/", response_class=HTMLResponse)
    async def upload_page(request: Request):
        if on_connect is not None:
            info = ConnectionInfo(
                remote_address=request.client.host if request.client else "",
                user_agent=request.headers.get("user-agent", ""),
                request_url=str(request.url.remove_query_params("token")),
            )
            try:
                await _call(on_connect, info)
            except Exception as e:
                logger.debug("onConnect callback failed: %s", e)
        return templates.TemplateResponse(
            request,
            "upload.html",
            {"token": token, "fallback_filename": fallback_filename},
        )

    @app.get("/ping")
    async def ping():
        return Response(status_code=204)

    @app.post("/upload")
    async def upload(request: Request):
        content_type = request.headers.get("content-type", "")
        file_count = 0
        try:
            async for event in iter_upload_events(
                request.stream(),
                content_type,
                fallback_filename=fallback_filename,
                max_file_size=max_file_size,
            ):
                file_count += 1
                try:
                    await _call(on_upload, event)
                except Exception:
                    logger.exception("Error in onUpload callback for %s", event.filename)
        except FileTooLargeError as e:
            logger.warning("Upload rejected: %s", e)
            return PlainTextResponse("File too large", status_code=413)
        except UploadParseError as e:
            logger.error("Upload parse error after %d file(s): %s", file_count, e)
            return PlainTextResponse("Server error", status_code=500)
        except ClientDisconnect:
            logger.info("Client disconnected mid-upload after %d file(s)", file_count)
            return Response(status_code=400)

        logger.info("Upload finished. Total files: %d", file_count)
        return PlainTextResponse("Upload successful")

    return app
