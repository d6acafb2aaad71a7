"""
Chunk Uploader

Sends whole files or chunk artifacts to the remote store, one multipart
POST at a time. The next artifact is not pulled until the previous
response has been read in full, so at most one request is outstanding.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

import aiofiles
import aiohttp

from .protocol import (
    ChunkArtifact, FIELD_DIR, FIELD_FILE, FIELD_FILENAME, FIELD_INDEX,
    WHOLE_FILE,
)
from ..errors import LocalFileError, RemoteError

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    """Outcome of one upload request."""
    url: str
    source: Path
    index: int
    size: int
    status: int
    text: str


# Called after each request completes
ChunkCallback = Callable[[UploadResult], None]


class ChunkUploader:
    """
    Posts files to the upload endpoint.

    Stops at the first failure: no retries, no skipping.
    """

    def __init__(self, session: aiohttp.ClientSession):
        self.session = session

        # Statistics
        self.requests_sent = 0
        self.bytes_uploaded = 0

    def _build_form(self, data: bytes, source: Path, filename: str,
                    directory: str, index: int) -> aiohttp.FormData:
        """Encode one submission; the index field is omitted for whole files."""
        form = aiohttp.FormData()
        form.add_field(FIELD_FILENAME, filename)
        form.add_field(FIELD_DIR, directory)
        if index > WHOLE_FILE:
            form.add_field(FIELD_INDEX, str(index))
        form.add_field(
            FIELD_FILE,
            data,
            filename=source.name,
            content_type='application/octet-stream',
        )
        return form

    async def _read_source(self, source: Path) -> bytes:
        try:
            async with aiofiles.open(source, 'rb') as f:
                return await f.read()
        except OSError as e:
            raise LocalFileError(f"Cannot open {source}: {e}") from e

    async def post(self, url: str, source: Path, filename: str, directory: str,
                   index: int = WHOLE_FILE) -> UploadResult:
        """
        Send one file (whole or a chunk artifact).

        Raises:
            LocalFileError: source can't be read
            RemoteError: transport failure or error status
        """
        data = await self._read_source(source)
        form = self._build_form(data, source, filename, directory, index)

        logger.info(f"post {url} {source}")

        try:
            async with self.session.post(url, data=form) as resp:
                text = await resp.text()
                status = resp.status
        except aiohttp.ClientError as e:
            raise RemoteError(f"Upload to {url} failed: {e}") from e

        if status >= 400:
            raise RemoteError(
                f"Upload to {url} rejected with {status}: {text}",
                status=status, body=text,
            )

        self.requests_sent += 1
        self.bytes_uploaded += len(data)

        return UploadResult(
            url=url, source=source, index=index,
            size=len(data), status=status, text=text,
        )

    async def upload_file(self, url: str, source: Path, filename: str, directory: str,
                          on_chunk: Optional[ChunkCallback] = None) -> UploadResult:
        """Send a file in a single request, without an index."""
        result = await self.post(url, Path(source), filename, directory)
        if on_chunk:
            on_chunk(result)
        return result

    async def upload_chunks(self, url: str, artifacts: AsyncIterator[ChunkArtifact],
                            filename: str, directory: str,
                            on_chunk: Optional[ChunkCallback] = None) -> int:
        """
        Send every artifact in order, each with its index.

        Each artifact is removed from the scratch area once its request
        finishes, whether or not it succeeded.

        Returns:
            Number of chunks sent
        """
        sent = 0

        async for artifact in artifacts:
            try:
                result = await self.post(url, artifact.path, filename, directory,
                                         index=artifact.index)
            finally:
                artifact.path.unlink(missing_ok=True)

            sent += 1
            if on_chunk:
                on_chunk(result)

        return sent

    def get_stats(self) -> dict:
        """Get uploader statistics."""
        return {
            'requests_sent': self.requests_sent,
            'bytes_uploaded': self.bytes_uploaded,
        }
