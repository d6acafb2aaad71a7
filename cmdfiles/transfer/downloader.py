"""
Stream Downloader

Design Decision: Download Strategy
===================================

Options Considered:
1. Buffer the whole response, then write
   - Simple
   - Memory grows with file size

2. Stream the body through a bounded pipeline, appending as it arrives
   - Memory capped at depth x chunk size
   - Reads overlap with disk writes

Decision: Pipelined streaming
- The HTTP body is a single ordered stream, so arrival order is file order
- Chunk size is half the client's max upload size
- A body read error is raised, never mistaken for end-of-file

Download Flow:
1. GET /files/{path}; non-2xx -> RemoteError, nothing written locally
2. Remove any existing local file, create parent directories
3. Append each chunk in arrival order, reporting the running total
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import aiofiles
import aiohttp

from .pipeline import ChunkPipeline, read_chunks
from .protocol import remote_basename
from ..config import PIPELINE_DEPTH
from ..errors import LocalFileError, RemoteError, StreamError

logger = logging.getLogger(__name__)


@dataclass
class DownloadProgress:
    """Track download progress."""
    url: str
    path: Path
    total_size: Optional[int] = None  # from Content-Length, when sent
    bytes_downloaded: int = 0
    chunks: int = 0
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_seconds(self) -> float:
        """Time elapsed since start."""
        return time.time() - self.start_time

    @property
    def speed_bytes_per_sec(self) -> float:
        """Download speed in bytes/second."""
        elapsed = self.elapsed_seconds
        if elapsed == 0:
            return 0
        return self.bytes_downloaded / elapsed


# Progress callback type
ProgressCallback = Callable[[DownloadProgress], None]


class StreamDownloader:
    """Downloads one remote file into a local directory."""

    def __init__(self, session: aiohttp.ClientSession, chunk_size: int,
                 depth: int = PIPELINE_DEPTH):
        self.session = session
        self.chunk_size = chunk_size
        self.depth = depth

    @staticmethod
    def local_path(remote_path: str, local_dir: Path) -> Path:
        """Local destination: the remote path's trailing segment under local_dir."""
        filename = remote_basename(remote_path)
        if not filename:
            raise ValueError(f"No file name in remote path: {remote_path!r}")
        return Path(local_dir) / filename

    async def download(self, url: str, remote_path: str, local_dir: Path,
                       progress_callback: Optional[ProgressCallback] = None) -> DownloadProgress:
        """
        Stream a remote file to disk.

        Raises:
            RemoteError: transport failure or non-2xx status
            StreamError: the body could not be read to the end
            LocalFileError: the destination can't be created or written

        Returns:
            Final progress (bytes_downloaded is the file size)
        """
        dest = self.local_path(remote_path, local_dir)

        try:
            async with self.session.get(url) as resp:
                if resp.status < 200 or resp.status >= 300:
                    text = await resp.text()
                    raise RemoteError(
                        f"Download of {url} failed with {resp.status}: {text.strip()}",
                        status=resp.status, body=text,
                    )

                progress = DownloadProgress(
                    url=url, path=dest,
                    total_size=None if resp.headers.get('Content-Encoding') else resp.content_length,
                )

                logger.info(f"download from {url} to {dest}")
                await self._write_body(resp, progress, progress_callback)

        except aiohttp.ClientPayloadError as e:
            raise StreamError(f"Download of {url} interrupted: {e}") from e
        except aiohttp.ClientError as e:
            raise RemoteError(f"Download of {url} failed: {e}") from e

        logger.info(f"Downloaded {dest} ({progress.bytes_downloaded:,} bytes)")
        return progress

    async def _write_body(self, resp: aiohttp.ClientResponse, progress: DownloadProgress,
                          progress_callback: Optional[ProgressCallback]):
        """Append the body to the destination chunk by chunk."""
        dest = progress.path
        try:
            dest.unlink(missing_ok=True)
            dest.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LocalFileError(f"Cannot prepare {dest}: {e}") from e

        source = read_chunks(resp.content.read, self.chunk_size)

        # Opening in append mode creates the file, so an empty body
        # still leaves a 0-byte file behind
        try:
            async with aiofiles.open(dest, 'ab') as f:
                async with ChunkPipeline(source, depth=self.depth) as chunks:
                    async for chunk in chunks:
                        await f.write(chunk)
                        progress.bytes_downloaded += len(chunk)
                        progress.chunks += 1

                        if progress_callback:
                            progress_callback(progress)
        except OSError as e:
            raise LocalFileError(f"Cannot write {dest}: {e}") from e

        if progress.total_size is not None and progress.bytes_downloaded != progress.total_size:
            raise StreamError(
                f"Download of {progress.url} truncated: got {progress.bytes_downloaded:,} "
                f"of {progress.total_size:,} bytes"
            )
