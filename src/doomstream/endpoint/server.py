"""FastAPI HTTP server: the connection dispatcher.

Routes each request by exact path plus a ``session=<int>`` query
parameter to the session registry, the MJPEG streaming loop, or the
input injector. Handlers are plain functions, so every request (and
every open stream) runs on its own worker thread; the registry is the
only shared state and is injected, never global.

    GET  /healthz            -> 200 "ok"
    GET  /                   -> public/index.html
    GET  /public/<path>      -> static file
    GET  /doom.mjpeg?session -> multipart/x-mixed-replace MJPEG stream
    POST /input?session      <- raw key token, e.g. "Up:down"
    POST /session/close?session
    GET  /sessions           -> slot summary (JSON)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import FileResponse, PlainTextResponse, Response, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from doomstream.config.settings import Settings
from doomstream.endpoint.envelope import ProtocolMalformed, RequestEnvelope
from doomstream.endpoint.stream import STREAM_MEDIA_TYPE, StreamingLoop
from doomstream.keyboard.base import KeyDeliveryError
from doomstream.keyboard.injector import InjectResult, InputInjector
from doomstream.session.janitor import SessionJanitor
from doomstream.session.models import ResourceError, SessionNotFound
from doomstream.session.registry import SessionRegistry

logger = logging.getLogger(__name__)

NO_CACHE = {"Cache-Control": "no-cache"}

CONTENT_TYPES = {
    ".html": "text/html; charset=utf-8",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".css": "text/css",
}


def plain(status_code: int, body: str) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=status_code, headers=NO_CACHE)


async def read_envelope(request: Request) -> RequestEnvelope:
    """Parse the request into a bounded envelope.

    The body is read incrementally and rejected as soon as it passes the
    configured limit, so an oversized upload is never buffered whole.
    """
    settings: Settings = request.app.state.settings
    limit = settings.server.max_body_bytes

    declared = request.headers.get("content-length")
    if declared is not None:
        try:
            if int(declared) > limit:
                raise ProtocolMalformed(f"body exceeds {limit} bytes")
        except ValueError as e:
            raise ProtocolMalformed(f"invalid Content-Length {declared!r}") from e

    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise ProtocolMalformed(f"body exceeds {limit} bytes")
        chunks.append(chunk)

    return RequestEnvelope.build(
        method=request.method,
        path=request.url.path,
        query=request.url.query,
        version=f"HTTP/{request.scope.get('http_version', '1.1')}",
        body=b"".join(chunks),
        limits=settings.server,
    )


def create_app(
    settings: Settings | None = None,
    registry: SessionRegistry | None = None,
    injector: InputInjector | None = None,
    janitor: SessionJanitor | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Configuration; defaults are used if None.
        registry: Optional pre-built session registry (for testing).
        injector: Optional pre-built input injector (for testing).
        janitor: Optional pre-built janitor (for testing).
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Startup
        reg: SessionRegistry = app.state.registry
        j = app.state.janitor
        if j is None:
            j = SessionJanitor(
                reg,
                sweep_interval=settings.sessions.sweep_interval,
                idle_timeout=settings.sessions.idle_timeout,
            )
            app.state.janitor = j
        reg.supervisor.start_reaper()
        j.start()
        logger.info(
            "Dispatcher started (%d session slots, capture=%s, spawn=%s)",
            reg.capacity, settings.capture.backend,
            "off" if reg.supervisor.spawn_disabled else settings.program.binary,
        )
        yield
        # Shutdown
        j.stop()
        closed = reg.close_all()
        reg.supervisor.stop_reaper()
        logger.info("Dispatcher stopped (closed sessions: %s)", closed or "none")

    app = FastAPI(
        title="doomstream",
        description="Interactive program sessions streamed as MJPEG",
        version="0.1.0",
        lifespan=lifespan,
        dependencies=[Depends(read_envelope)],
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.state.settings = settings
    app.state.registry = registry or SessionRegistry.from_settings(settings)
    app.state.injector = injector or InputInjector.for_backend(settings.capture.backend)
    app.state.janitor = janitor

    public_dir = Path(settings.server.public_dir)

    @app.exception_handler(ProtocolMalformed)
    async def malformed_request(request: Request, exc: ProtocolMalformed) -> Response:
        logger.warning("Malformed request %s %s: %s", request.method, request.url.path[:64], exc)
        return plain(400, "bad request")

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> Response:
        if exc.status_code in (404, 405):
            return plain(404, "not found")
        return plain(exc.status_code, str(exc.detail))

    @app.get("/healthz")
    def health_check() -> Response:
        return plain(200, "ok")

    @app.get("/")
    def index() -> Response:
        return _static(public_dir, "index.html")

    @app.get("/public/{asset_path:path}")
    def public_asset(asset_path: str) -> Response:
        return _static(public_dir, asset_path)

    @app.get("/doom.mjpeg")
    def stream_session(envelope: RequestEnvelope = Depends(read_envelope)) -> Response:
        reg: SessionRegistry = app.state.registry
        try:
            handle = reg.get_or_create(envelope.session_id)
        except (SessionNotFound, ResourceError) as e:
            logger.warning("Stream request rejected: %s", e)
            return plain(503, "no session")
        loop = StreamingLoop(
            handle,
            interval=settings.capture.frame_interval,
            quality=settings.capture.jpeg_quality,
            max_frames=settings.capture.max_frames,
        )
        return StreamingResponse(iter(loop), media_type=STREAM_MEDIA_TYPE, headers=NO_CACHE)

    @app.post("/input")
    def receive_input(envelope: RequestEnvelope = Depends(read_envelope)) -> Response:
        reg: SessionRegistry = app.state.registry
        inj: InputInjector = app.state.injector
        try:
            if settings.sessions.allow_input_create:
                handle = reg.get_or_create(envelope.session_id)
            else:
                handle = reg.get(envelope.session_id)
        except (SessionNotFound, ResourceError) as e:
            logger.warning("Input request rejected: %s", e)
            return plain(503, "no session")
        if not envelope.body:
            return plain(400, "empty payload")

        token = envelope.body.decode("utf-8", errors="replace")
        try:
            result = inj.inject(handle, token)
        except KeyDeliveryError as e:
            logger.error("Input delivery to session %d failed: %s", handle.id, e)
            return plain(500, "input delivery failed")
        if result is InjectResult.UNRESOLVED:
            return plain(500, "unresolved key")
        if result is InjectResult.NO_TARGET:
            return plain(500, "no input target")
        return plain(200, "ok")

    @app.post("/session/close")
    def close_session(envelope: RequestEnvelope = Depends(read_envelope)) -> Response:
        reg: SessionRegistry = app.state.registry
        try:
            closed = reg.close(envelope.session_id)
        except SessionNotFound:
            return plain(404, "no session")
        return plain(200, "closed" if closed else "not active")

    @app.get("/sessions")
    def list_sessions() -> dict[str, Any]:
        reg: SessionRegistry = app.state.registry
        return {"capacity": reg.capacity, "sessions": reg.snapshot()}

    return app


def _static(public_dir: Path, rel_path: str) -> Response:
    """Serve a file from ``public_dir``; anything outside it is not found."""
    base = public_dir.resolve()
    target = (base / rel_path.lstrip("/")).resolve()
    if not target.is_relative_to(base) or not target.is_file():
        return plain(404, "not found")
    media_type = CONTENT_TYPES.get(target.suffix.lower(), "text/plain")
    return FileResponse(target, media_type=media_type, headers=NO_CACHE)


def main() -> None:
    """Entry point for running the server standalone."""
    settings = Settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
