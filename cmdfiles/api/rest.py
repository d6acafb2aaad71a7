"""
REST API for the File Store

Design Decision: API Framework
==============================

Options Considered:
1. FastAPI - Modern, fast, auto-docs, async support
2. Flask - Simple, widely used, but sync-focused
3. aiohttp - Async, but less features
4. Starlette - Lightweight, FastAPI is built on it

Decision: FastAPI
- Native async support (receiver writes through aiofiles)
- FileResponse streams downloads without loading them into memory
- Plain-text error tokens via a single exception handler

API Design:
- POST /upload[/{dir}]   multipart upload (whole file or one chunk)
- GET  /files/{path}     raw file bytes
- GET  /delete/{path}    recursive delete (GET for curl-friendliness)
- GET  /list/{path}      plain-text directory table
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, PlainTextResponse
from pydantic import BaseModel

from .. import __version__
from ..config import ServerConfig
from ..errors import StoreError
from ..server import ChunkReceiver, FileStore
from ..transfer.protocol import SUCCESS
from .limits import RequestSizeLimit

logger = logging.getLogger(__name__)

NOT_FOUND = 'NOT_FOUND'


# === Pydantic Models ===

class StoreInfo(BaseModel):
    """Basic server info."""
    name: str
    version: str
    max_request_size: int


class UploadStats(BaseModel):
    """Upload counters since startup."""
    chunks_received: int
    bytes_received: int


def create_app(config: ServerConfig = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Server configuration (uses defaults if not provided)

    Returns:
        FastAPI application
    """
    config = config or ServerConfig()
    store = FileStore(config.root)
    receiver = ChunkReceiver(config.root, max_request_size=config.max_request_size)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown."""
        logger.info(f"File store serving {store.root.resolve()}")
        yield
        logger.info(f"File store stopping. Received {receiver.chunks_received} uploads, "
                    f"{receiver.bytes_received:,} bytes")

    app = FastAPI(
        title="cmdfiles",
        description="HTTP file store with chunked uploads",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.receiver = receiver

    # Bodies without a Content-Length are cut off while streaming
    app.add_middleware(RequestSizeLimit, max_size=config.max_request_size)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"ERROR {exc.token} ({request.method} {request.url.path})")
        return PlainTextResponse(exc.token, status_code=exc.status_code)

    # === Endpoints ===

    @app.get("/", response_model=StoreInfo, tags=["General"])
    async def root():
        """API root - basic info."""
        return StoreInfo(
            name="cmdfiles",
            version=__version__,
            max_request_size=config.max_request_size,
        )

    @app.get("/stats", response_model=UploadStats, tags=["General"])
    async def get_stats():
        """Get upload statistics."""
        return UploadStats(**receiver.get_stats())

    # === File Operations ===

    @app.post("/upload", tags=["Files"])
    @app.post("/upload/{path:path}", tags=["Files"])
    async def upload(request: Request, path: str = ""):
        """Store a whole file or append one chunk of a larger file."""
        chunk = await receiver.decode(request)
        await receiver.receive(chunk)
        return PlainTextResponse(SUCCESS)

    @app.get("/files/{path:path}", tags=["Files"])
    async def download(path: str):
        """Serve a stored file."""
        target = store.resolve(path)
        if not target.is_file():
            raise StoreError(NOT_FOUND, 404)
        return FileResponse(target, filename=target.name)

    @app.get("/delete", tags=["Files"])
    @app.get("/delete/{path:path}", tags=["Files"])
    async def delete(path: str = ""):
        """Delete a file or directory tree."""
        store.delete(path)
        return PlainTextResponse(SUCCESS)

    @app.get("/list", tags=["Files"])
    @app.get("/list/{path:path}", tags=["Files"])
    async def list_files(path: str = ""):
        """List a directory as a plain-text table."""
        return PlainTextResponse(store.listing(path))

    return app


async def run_api_server(config: ServerConfig):
    """
    Run the API server.

    Args:
        config: Server configuration
    """
    import uvicorn

    app = create_app(config)

    server_config = uvicorn.Config(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )
    server = uvicorn.Server(server_config)
    await server.serve()
