"""
File Transfer Protocol

Design Decision: Transfer Protocol
===================================

Options Considered:
1. Raw TCP with custom framing
   - Lightweight, full control
   - Needs its own server and client loop

2. HTTP multipart uploads + plain GET downloads
   - Works with any HTTP client, curl included
   - Request size bounded by the server

Decision: HTTP multipart, one request per chunk
- Files below the threshold go in one request (no index)
- Larger files are split; each part carries a 1-based `multiindex`
- Chunks are sent strictly in order, the server appends in arrival order

Upload Form:
```
POST /upload/{dir}
  filename    leaf name of the destination file
  dir         destination directory under the server root ("" = root)
  multiindex  chunk index, only present for chunked sends (1, 2, 3, ...)
  uploadFile  file part carrying the bytes
```
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Multipart field names
FIELD_FILENAME = 'filename'
FIELD_DIR = 'dir'
FIELD_INDEX = 'multiindex'
FIELD_FILE = 'uploadFile'

# Response tokens
SUCCESS = 'SUCCESS'
FILE_TOO_BIG = 'FILE_TOO_BIG'
INVALID_DIR = 'INVALID_DIR'
INVALID_FILE = 'INVALID_FILE'
INVALID_URL = 'INVALID_URL'
WRITE_FILE_ERROR = 'WRITE_FILE_ERROR'
WRITE_FILE_APPEND_ERROR = 'WRITE_FILE_APPEND_ERROR'

# Index used for whole-file sends
WHOLE_FILE = 0


@dataclass
class Transfer:
    """One file movement operation, alive for a single command."""
    source: str
    destination: str
    size: Optional[int] = None  # unknown for downloads until headers arrive
    threshold: int = 0

    @property
    def chunked(self) -> bool:
        return self.size is not None and self.size >= self.threshold


@dataclass
class ChunkArtifact:
    """A chunk payload materialized in the scratch area."""
    transfer_id: str
    index: int
    path: Path
    size: int
    basename: str


@dataclass
class Chunk:
    """One decoded submission as seen by the receiver."""
    filename: str
    directory: str
    data: bytes
    index: int = WHOLE_FILE

    @property
    def is_whole_file(self) -> bool:
        return self.index <= WHOLE_FILE


def parse_index(raw: Optional[str]) -> int:
    """Decode the `multiindex` field; absent or non-numeric means whole file."""
    if raw is None:
        return WHOLE_FILE
    try:
        index = int(str(raw).strip())
    except ValueError:
        return WHOLE_FILE
    return max(index, WHOLE_FILE)


def remote_basename(remote_path: str) -> str:
    """Trailing segment of a remote path ("a/b/c.txt" -> "c.txt")."""
    return remote_path.rstrip('/').rsplit('/', 1)[-1]
