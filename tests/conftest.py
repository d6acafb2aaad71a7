"""Pytest configuration and fixtures"""

import socket
import shutil
import tempfile
import threading
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import pytest
import uvicorn
from aiohttp import web
from fastapi import FastAPI

from cmdfiles.api import create_app
from cmdfiles.config import ClientConfig, ScratchArea, ServerConfig


def free_port() -> int:
    """Ask the OS for an unused TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@asynccontextmanager
async def stub_server(handler):
    """Serve one aiohttp handler on every path; yields the port."""
    app = web.Application()
    app.router.add_route('*', '/{tail:.*}', handler)
    runner = web.AppRunner(app)
    await runner.setup()

    port = free_port()
    site = web.TCPSite(runner, '127.0.0.1', port)
    await site.start()
    try:
        yield port
    finally:
        await runner.cleanup()


@dataclass
class LiveServer:
    """A running file store and its settings."""
    config: ServerConfig
    app: FastAPI

    @property
    def root(self) -> Path:
        return self.config.root


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def scratch(temp_dir):
    """Scratch area isolated from the real temp directory"""
    area = ScratchArea(temp_dir / 'scratch')
    area.ensure()
    return area


@pytest.fixture
def live_server(temp_dir):
    """Run the file store in a background thread"""
    config = ServerConfig(
        host='127.0.0.1',
        port=free_port(),
        root=temp_dir / 'public',
        log_level='warning',
    )
    app = create_app(config)
    server = uvicorn.Server(uvicorn.Config(
        app, host=config.host, port=config.port, log_level='warning',
    ))

    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()

    deadline = time.time() + 10
    while not server.started:
        if time.time() > deadline:
            raise RuntimeError("Server did not start")
        time.sleep(0.01)

    yield LiveServer(config=config, app=app)

    server.should_exit = True
    thread.join(timeout=10)


@pytest.fixture
def client_config(live_server, scratch):
    """Client configuration pointing at the live server"""
    return ClientConfig(
        host='127.0.0.1',
        port=str(live_server.config.port),
        scratch=scratch,
    )
