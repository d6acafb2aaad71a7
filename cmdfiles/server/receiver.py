"""
Chunk Receiver

Design Decision: Reassembly Strategy
====================================

Options Considered:
1. Store parts separately, concatenate on the last one
   - Tolerates out-of-order delivery
   - Needs a total chunk count and a second full copy on disk

2. Append each part to the destination as it arrives
   - One copy on disk, no bookkeeping
   - Relies on the sender delivering parts in order

Decision: Append in arrival order
- The client sends strictly sequentially (1, 2, 3, ...)
- Index 1 starts a fresh file, later indices append
- Re-sending a part duplicates its bytes; there is no dedup

Write Policy:
| multiindex       | Action                                         |
|------------------|------------------------------------------------|
| absent / 0 / bad | write whole file atomically (temp + replace)   |
| 1                | delete existing destination, then append       |
| >= 2             | append                                         |
"""

import uuid
import logging
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
from starlette.datastructures import UploadFile
from starlette.requests import Request

from ..config import MAX_REQUEST_SIZE
from ..errors import StoreError
from ..transfer.protocol import (
    Chunk, FIELD_DIR, FIELD_FILE, FIELD_FILENAME, FIELD_INDEX,
    FILE_TOO_BIG, INVALID_DIR, INVALID_FILE, WRITE_FILE_APPEND_ERROR,
    WRITE_FILE_ERROR, parse_index,
)

logger = logging.getLogger(__name__)


def resolve_under(root: Path, relative: str) -> Optional[Path]:
    """
    Resolve a client-supplied path against the root.

    Returns:
        Absolute path, or None if it escapes the root
    """
    root = root.resolve()
    target = (root / relative.lstrip('/\\')).resolve()
    if target != root and root not in target.parents:
        return None
    return target


class ChunkReceiver:
    """
    Decodes upload submissions and writes them under the server root.

    Each request is handled on its own; nothing is remembered between
    chunks of the same file.
    """

    def __init__(self, root: Path, max_request_size: int = MAX_REQUEST_SIZE):
        self.root = Path(root)
        self.max_request_size = max_request_size

        # Statistics
        self.chunks_received = 0
        self.bytes_received = 0

    async def decode(self, request: Request) -> Chunk:
        """
        Decode one multipart submission.

        Raises:
            StoreError: FILE_TOO_BIG or INVALID_FILE
        """
        content_length = request.headers.get('content-length', '')
        if content_length.isdigit() and int(content_length) > self.max_request_size:
            raise StoreError(FILE_TOO_BIG)

        try:
            form = await request.form()
        except Exception as e:
            logger.error(f"Cannot parse upload form: {e}")
            raise StoreError(FILE_TOO_BIG) from e

        try:
            upload = form.get(FIELD_FILE)
            if not isinstance(upload, UploadFile):
                raise StoreError(INVALID_FILE)

            data = await upload.read(self.max_request_size + 1)
            if len(data) > self.max_request_size:
                raise StoreError(FILE_TOO_BIG)

            return Chunk(
                filename=str(form.get(FIELD_FILENAME) or ''),
                directory=str(form.get(FIELD_DIR) or ''),
                data=data,
                index=parse_index(form.get(FIELD_INDEX)),
            )
        finally:
            await form.close()

    def destination(self, chunk: Chunk) -> Path:
        """
        Build the destination path, creating its directory.

        Raises:
            StoreError: INVALID_DIR or INVALID_FILE
        """
        filename = chunk.filename
        if not filename or filename in ('.', '..') or '/' in filename or '\\' in filename:
            raise StoreError(INVALID_FILE)

        directory = resolve_under(self.root, chunk.directory)
        if directory is None:
            raise StoreError(INVALID_DIR)

        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create {directory}: {e}")
            raise StoreError(INVALID_DIR) from e

        return directory / filename

    async def receive(self, chunk: Chunk) -> Path:
        """
        Apply the write policy for one submission.

        Returns:
            Path of the destination file
        """
        dest = self.destination(chunk)

        if chunk.is_whole_file:
            await self._write_whole(dest, chunk.data)
        else:
            await self._append(dest, chunk.data, fresh=(chunk.index == 1))

        self.chunks_received += 1
        self.bytes_received += len(chunk.data)
        logger.debug(f"Stored {len(chunk.data):,} bytes to {dest} (index {chunk.index})")

        return dest

    async def _write_whole(self, dest: Path, data: bytes):
        """Replace the destination with exactly these bytes."""
        temp_path = dest.with_name(f".{dest.name}.{uuid.uuid4().hex}.tmp")

        try:
            async with aiofiles.open(temp_path, 'wb') as f:
                await f.write(data)
            await aiofiles.os.replace(temp_path, dest)
        except OSError as e:
            logger.error(f"Cannot write {dest}: {e}")
            if temp_path.exists():
                temp_path.unlink()
            raise StoreError(WRITE_FILE_ERROR, 500) from e

    async def _append(self, dest: Path, data: bytes, fresh: bool):
        """Append to the destination, starting over when fresh is set."""
        try:
            if fresh and dest.is_file():
                await aiofiles.os.remove(dest)

            async with aiofiles.open(dest, 'ab') as f:
                await f.write(data)
        except OSError as e:
            logger.error(f"Cannot append to {dest}: {e}")
            raise StoreError(WRITE_FILE_APPEND_ERROR, 500) from e

    def get_stats(self) -> dict:
        """Get receiver statistics."""
        return {
            'chunks_received': self.chunks_received,
            'bytes_received': self.bytes_received,
        }
