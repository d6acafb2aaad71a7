"""
Server Module - Chunk Reception and Store Operations

Writes uploaded files and chunks under the served root, and deletes or
lists its contents.
"""

from .receiver import ChunkReceiver
from .store import FileStore

__all__ = ['ChunkReceiver', 'FileStore']
