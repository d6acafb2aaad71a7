"""
Reader/Writer Pipeline

Design Decision: Producer/Consumer Coupling
===========================================

Options Considered:
1. Read everything, then write
   - Simplest
   - Memory grows with file size

2. Read and write in the same loop
   - Bounded memory
   - Slow reads stall writes and vice versa

3. Producer task + bounded queue + consumer
   - Reads overlap with writes/requests
   - Memory capped at depth x chunk size

Decision: asyncio task feeding an asyncio.Queue(maxsize=depth)
- One producer, one consumer, strict FIFO
- Producer blocks on put() once the queue is full
- Exactly one close marker per run; a producer error rides on it and is
  re-raised in the consumer instead of silently ending the stream
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Generic, Optional, TypeVar

from ..config import PIPELINE_DEPTH
from ..errors import StreamError

logger = logging.getLogger(__name__)

T = TypeVar('T')

ReadFunc = Callable[[int], Awaitable[bytes]]


class _Closed:
    """Close marker, optionally carrying the producer's failure."""

    def __init__(self, error: Optional[BaseException] = None):
        self.error = error


async def read_chunks(read: ReadFunc, chunk_size: int) -> AsyncIterator[bytes]:
    """
    Read a byte source into fixed-size chunks.

    Every chunk is exactly chunk_size bytes except possibly the last one,
    which holds the remainder. An empty read ends the stream; no empty chunk
    is ever yielded.

    Args:
        read: Awaitable read(n) returning at most n bytes, b'' at end
        chunk_size: Maximum bytes per chunk
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    while True:
        buf = bytearray()
        while len(buf) < chunk_size:
            data = await read(chunk_size - len(buf))
            if not data:
                break
            buf += data

        if not buf:
            return

        yield bytes(buf)

        if len(buf) < chunk_size:
            return


class ChunkPipeline(Generic[T]):
    """
    Bounded single-producer/single-consumer channel.

    The producer is any async iterator; it runs in its own task and its
    items are consumed with `async for`. The pipeline is not restartable.

    Usage:
        async with ChunkPipeline(read_chunks(f.read, size)) as chunks:
            async for chunk in chunks:
                ...
    """

    def __init__(self, source: AsyncIterator[T], depth: int = PIPELINE_DEPTH):
        if depth < 1:
            raise ValueError(f"depth must be at least 1, got {depth}")

        self.depth = depth
        self._source = source
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=depth)
        self._task: Optional[asyncio.Task] = None
        self._finished = False

        # Statistics
        self.items_produced = 0
        self.items_consumed = 0

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def finished(self) -> bool:
        return self._finished

    def start(self):
        """Start the producer task (done lazily on first iteration)."""
        if self._task is not None:
            return
        self._task = asyncio.ensure_future(self._produce())

    async def _produce(self):
        """Drain the source into the queue, then send one close marker."""
        error = None
        try:
            async for item in self._source:
                await self._queue.put(item)
                self.items_produced += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Pipeline producer failed after {self.items_produced} items: {e}")
            error = e
        await self._queue.put(_Closed(error))

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        if self._finished:
            raise StopAsyncIteration

        self.start()
        item = await self._queue.get()

        if isinstance(item, _Closed):
            self._finished = True
            if item.error is not None:
                if isinstance(item.error, StreamError):
                    raise item.error
                raise StreamError(f"Read failed after {self.items_consumed} chunks: {item.error}") from item.error
            raise StopAsyncIteration

        self.items_consumed += 1
        return item

    async def aclose(self):
        """Stop the producer and release the source."""
        self._finished = True

        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        aclose = getattr(self._source, 'aclose', None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> 'ChunkPipeline[T]':
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
