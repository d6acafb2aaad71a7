"""
File Splitter

Design Decision: Chunk Size
===========================

Options Considered:
| Size    | Pros                          | Cons                           |
|---------|-------------------------------|--------------------------------|
| 1MB     | Fine-grained progress         | Many requests for large files  |
| 5MB     | Half the server's 10MB limit  | -                              |
| 10MB    | Fewest requests               | Multipart overhead overflows   |

Decision: 5MB (5,242,880 bytes), configurable via TransferSettings
- Each chunk plus multipart framing fits the server's request limit
- Only one chunk's bytes are resident while splitting

Chunking Strategy: Fixed-Size, Sequential
- The source is read once, front to back
- Every artifact is exactly chunk_size bytes except the last
- Artifacts land in the scratch area before being handed downstream
"""

import uuid
import logging
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles

from .pipeline import ChunkPipeline, read_chunks
from .protocol import ChunkArtifact
from ..config import MAX_UPLOAD_SIZE, PIPELINE_DEPTH, ScratchArea

logger = logging.getLogger(__name__)


class FileSplitter:
    """
    Splits a file into on-disk chunk artifacts.

    Features:
    - Lazy: artifacts are produced as the consumer pulls them
    - One transfer id shared by every artifact of a split
    - 1-based, gapless indices
    """

    def __init__(self, scratch: ScratchArea, chunk_size: int = MAX_UPLOAD_SIZE,
                 depth: int = PIPELINE_DEPTH):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        self.scratch = scratch
        self.chunk_size = chunk_size
        self.depth = depth

    def get_chunk_count(self, file_size: int) -> int:
        """Calculate number of chunks for a file of given size."""
        return (file_size + self.chunk_size - 1) // self.chunk_size

    def split(self, file_path: Path,
              transfer_id: Optional[str] = None) -> ChunkPipeline[ChunkArtifact]:
        """
        Split a file into chunk artifacts.

        Returns:
            Pipeline yielding ChunkArtifact in index order
        """
        transfer_id = transfer_id or str(uuid.uuid4())
        return ChunkPipeline(self._artifacts(Path(file_path), transfer_id), depth=self.depth)

    async def _artifacts(self, file_path: Path,
                         transfer_id: str) -> AsyncIterator[ChunkArtifact]:
        """Read the source and write each chunk to the scratch area."""
        self.scratch.ensure()
        basename = file_path.name
        index = 0

        async with aiofiles.open(file_path, 'rb') as f:
            async for data in read_chunks(f.read, self.chunk_size):
                index += 1
                artifact_path = self.scratch.artifact_path(transfer_id, index, basename)

                async with aiofiles.open(artifact_path, 'wb') as out:
                    await out.write(data)

                logger.debug(f"Chunk {index}: {len(data):,} bytes -> {artifact_path.name}")

                yield ChunkArtifact(
                    transfer_id=transfer_id,
                    index=index,
                    path=artifact_path,
                    size=len(data),
                    basename=basename,
                )
