"""
Transfer Client - Main Controller

Orchestrates one operation against the remote store:
- upload(source, remote_dir): whole-file or chunked, depending on size
- download(remote_path, local_dir): streamed to disk
- delete(remote_path) / list(remote_path): plain pass-through requests
"""

import uuid
import logging
from pathlib import Path
from typing import Optional

import aiohttp

from .config import ClientConfig, TransferSettings
from .errors import LocalFileError, RemoteError
from .transfer import ChunkUploader, FileSplitter, StreamDownloader, Transfer
from .transfer.downloader import DownloadProgress, ProgressCallback
from .transfer.uploader import ChunkCallback

logger = logging.getLogger(__name__)


class TransferClient:
    """
    Client side of the file store.

    Owns one HTTP session; use as an async context manager:

        async with TransferClient(config) as client:
            await client.upload(Path('big.iso'), 'isos')
    """

    def __init__(self, config: ClientConfig, settings: Optional[TransferSettings] = None):
        """
        Args:
            config: Remote endpoint (must have host and port)
            settings: Chunking knobs (uses defaults if not provided)
        """
        config.require()

        self.config = config
        self.settings = settings or TransferSettings()
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("TransferClient used outside 'async with'")
        return self._session

    async def start(self):
        # Transfers have no deadline
        timeout = aiohttp.ClientTimeout(total=None)
        self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> 'TransferClient':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # === Upload ===

    def prepare_upload(self, source: str, remote_dir: str) -> Transfer:
        """
        Validate a local source before any request is made.

        Raises:
            LocalFileError: empty path, missing file, directory, or empty file
        """
        if not source:
            raise LocalFileError("Local file path is empty")

        path = Path(source)
        if not path.exists():
            raise LocalFileError(f"{source} does not exist")
        if path.is_dir():
            raise LocalFileError(f"{source} is not a file")

        size = path.stat().st_size
        if size <= 0:
            raise LocalFileError(f"{source} is empty")

        return Transfer(
            source=str(path),
            destination=remote_dir or '',
            size=size,
            threshold=self.settings.chunk_threshold,
        )

    async def upload(self, source: str, remote_dir: str = '',
                     on_chunk: Optional[ChunkCallback] = None) -> int:
        """
        Upload a local file into remote_dir.

        Returns:
            Number of requests sent
        """
        transfer = self.prepare_upload(source, remote_dir)
        path = Path(transfer.source)
        url = self.config.upload_url(transfer.destination)
        uploader = ChunkUploader(self.session)

        if not transfer.chunked:
            logger.debug(f"Uploading {path} ({transfer.size:,} bytes) in one request")
            await uploader.upload_file(url, path, path.name, transfer.destination, on_chunk)
            return 1

        splitter = FileSplitter(
            self.config.scratch,
            chunk_size=self.settings.max_upload_size,
            depth=self.settings.pipeline_depth,
        )
        logger.debug(f"Uploading {path} ({transfer.size:,} bytes) in "
                     f"{splitter.get_chunk_count(transfer.size)} chunks")

        transfer_id = str(uuid.uuid4())
        try:
            async with splitter.split(path, transfer_id) as artifacts:
                return await uploader.upload_chunks(
                    url, artifacts, path.name, transfer.destination, on_chunk
                )
        finally:
            # Artifacts split ahead of a failed request are never sent
            self.config.scratch.discard(transfer_id)

    # === Download ===

    async def download(self, remote_path: str, local_dir: str = '.',
                       progress_callback: Optional[ProgressCallback] = None) -> DownloadProgress:
        """Download remote_path into local_dir."""
        if not remote_path:
            raise LocalFileError("Remote file path is empty")

        downloader = StreamDownloader(
            self.session,
            chunk_size=self.settings.download_chunk_size,
            depth=self.settings.pipeline_depth,
        )
        try:
            return await downloader.download(
                self.config.download_url(remote_path), remote_path,
                Path(local_dir or '.'), progress_callback,
            )
        except ValueError as e:
            raise LocalFileError(str(e)) from e

    # === Delete / List ===

    async def _get_text(self, url: str) -> str:
        try:
            async with self.session.get(url) as resp:
                text = await resp.text()
                status = resp.status
        except aiohttp.ClientError as e:
            raise RemoteError(f"Request to {url} failed: {e}") from e

        if status >= 400:
            raise RemoteError(f"{url} answered {status}: {text}", status=status, body=text)
        return text

    async def delete(self, remote_path: str) -> str:
        """Delete a remote file or directory; returns the server's answer."""
        if not remote_path:
            raise LocalFileError("Remote file path is empty")
        return await self._get_text(self.config.delete_url(remote_path))

    async def list(self, remote_path: str = '') -> str:
        """Fetch the remote directory table."""
        return await self._get_text(self.config.list_url(remote_path))
