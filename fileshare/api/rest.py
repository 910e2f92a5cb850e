"""
REST API for a FileShare session

Design Decision: Live Progress Transport
========================================

Options Considered:
1. Client polling of /api/info
   - Trivial, but laggy or wasteful depending on the interval
2. WebSocket
   - Bidirectional, which we don't need
   - Not usable from curl
3. Server-Sent Events
   - One long GET, plain text, EventSource in every browser
   - Heartbeat comments keep proxies from closing idle streams

Decision: SSE on /api/events, plus /api/info for one-off reads

API Design:
- Every endpoint reads/writes through the FileServer captured by
  create_app(); there is no module-level session
- Session errors are translated to HTTP status codes here
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask

from ..errors import (
    MissingFileError, ModeMismatchError, PeerBusyError, TransferError,
    UploadConflictError,
)
from ..server import FileServer
from ..session import Mode
from ..utils import peer_address

logger = logging.getLogger(__name__)

# Idle interval between SSE heartbeat comments (seconds)
HEARTBEAT_INTERVAL = 0.5

STATIC_DIR = Path(__file__).parent / "static"


# === Pydantic Models ===

class InfoResponse(BaseModel):
    """Snapshot of the session's transfer status."""
    mode: str
    path: str
    size: int
    transferred: int
    progress: float
    status: str
    error: str
    client_ip: str
    start_time: float
    last_update_time: float


class UploadResponse(BaseModel):
    """Result of an upload."""
    status: str
    path: str
    size: int


class CancelResponse(BaseModel):
    """Phase after a cancel request."""
    status: str


def client_peer(request: Request) -> str:
    """Identify the requesting peer by its address."""
    if request.client is None:
        return "unknown"
    return peer_address(request.client.host)


async def event_stream(server: FileServer,
                       is_disconnected: Callable[[], Awaitable[bool]],
                       heartbeat_interval: float = HEARTBEAT_INTERVAL) -> AsyncIterator[str]:
    """
    Generate SSE frames for one observer.

    Sends the current snapshot first, then one frame per published update,
    and a heartbeat comment whenever nothing arrived for heartbeat_interval.
    Stops when the observer disconnects; the subscription is always removed.
    """
    queue = server.events.subscribe()
    try:
        yield f"data: {server.snapshot().to_json()}\n\n"

        while not await is_disconnected():
            try:
                data = await asyncio.wait_for(queue.get(), timeout=heartbeat_interval)
                yield f"data: {data}\n\n"
            except asyncio.TimeoutError:
                yield ":heartbeat\n\n"
    finally:
        server.events.unsubscribe(queue)


# === API Creation ===

def create_app(server: FileServer, heartbeat_interval: float = HEARTBEAT_INTERVAL) -> FastAPI:
    """
    Create the FastAPI application for a session.

    Args:
        server: the FileServer every endpoint operates on
        heartbeat_interval: idle time between SSE heartbeats

    Returns:
        FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown."""
        logger.info(f"API serving {server.mode.value} session for {server.target_name}")
        yield
        logger.info("API server stopping...")

    app = FastAPI(
        title="FileShare",
        description="Single-session file transfer with live progress",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.server = server

    # === Endpoints ===

    @app.get("/", include_in_schema=False)
    async def index():
        """Observer page."""
        return FileResponse(STATIC_DIR / "index.html", media_type="text/html; charset=utf-8")

    @app.get("/api/info", response_model=InfoResponse, tags=["Session"])
    async def get_info():
        """Current transfer status."""
        return server.snapshot().to_dict()

    @app.get("/api/log", response_model=List[str], tags=["Session"])
    async def get_log():
        """Transfer log, oldest first."""
        return server.log.entries()

    @app.get("/api/stats", tags=["Session"])
    async def get_stats():
        """Session statistics."""
        return server.get_stats()

    @app.get("/api/events", tags=["Session"])
    async def events(request: Request):
        """
        Live status as Server-Sent Events.

        Every frame carries the same fields as /api/info.
        """
        return StreamingResponse(
            event_stream(server, request.is_disconnected, heartbeat_interval),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            }
        )

    @app.get("/api/download", tags=["Transfer"])
    async def download(request: Request):
        """
        Download the served file, or a zip of the served directory.

        Byte-range requests on a file are answered with partial content
        and do not move the progress counters.
        """
        peer = client_peer(request)
        try:
            server.require_mode(Mode.SEND)
            server.admit(peer)
        except ModeMismatchError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except PeerBusyError as e:
            raise HTTPException(status_code=503, detail=str(e))

        range_header = request.headers.get("range")
        if range_header and server.path.is_file():
            server.add_log(f"Range request from {peer}: {range_header}")

            # async so the release (and its broadcast) runs on the event loop
            async def release():
                server.release_peer(peer)

            return FileResponse(
                server.path,
                filename=server.target_name,
                background=BackgroundTask(release),
            )

        try:
            result = await server.sender.start(peer)
        except TransferError as e:
            server.release_peer(peer)
            raise HTTPException(status_code=404, detail=f"File not found: {e}")

        return StreamingResponse(
            result.body,
            media_type=result.media_type,
            headers=result.headers,
        )

    @app.post("/api/upload", response_model=UploadResponse, tags=["Transfer"])
    async def upload(request: Request):
        """
        Receive one file from a multipart form field named "file".

        Returns 409 without touching the disk if the name is taken.
        """
        peer = client_peer(request)
        try:
            server.require_mode(Mode.RECV)
            server.admit(peer)
        except ModeMismatchError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except PeerBusyError as e:
            raise HTTPException(status_code=503, detail=str(e))

        try:
            form = await request.form()
            try:
                result = await server.receiver.receive(peer, form.get("file"))
            finally:
                await form.close()
        except MissingFileError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except UploadConflictError as e:
            return JSONResponse(status_code=409, content=e.to_dict())
        except TransferError as e:
            raise HTTPException(status_code=500, detail=f"Upload failed: {e}")
        finally:
            server.release_peer(peer)

        if result.cancelled:
            return JSONResponse(status_code=410, content=result.to_dict())
        return result.to_dict()

    @app.post("/api/cancel", response_model=CancelResponse, tags=["Transfer"])
    async def cancel(request: Request):
        """Cancel the current transfer, whoever started it."""
        phase = server.cancel(client_peer(request))
        return {"status": phase.value}

    return app


async def run_api_server(server: FileServer, host: str = "0.0.0.0", port: int = 0,
                         sock=None, heartbeat_interval: float = HEARTBEAT_INTERVAL,
                         exit_grace: float = 0.5, log_level: str = "info"):
    """
    Run the API server until interrupted.

    Args:
        server: the session to serve
        host: Host to bind to (ignored when sock is given)
        port: Port to listen on (ignored when sock is given)
        sock: an already bound listening socket
        exit_grace: delay between a terminal phase and shutdown when the
            session has auto_exit set
    """
    import uvicorn

    app = create_app(server, heartbeat_interval=heartbeat_interval)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level=log_level,
    )
    uv_server = uvicorn.Server(config)

    watcher: Optional[asyncio.Task] = None
    if server.auto_exit:
        async def exit_when_done():
            phase = await server.wait_for_terminal()
            logger.info(f"Session {phase.value}, exiting")
            await asyncio.sleep(exit_grace)
            uv_server.should_exit = True

        watcher = asyncio.create_task(exit_when_done())

    try:
        await uv_server.serve(sockets=[sock] if sock is not None else None)
    finally:
        if watcher is not None:
            watcher.cancel()
