"""
Transfer Module - Chunked Upload/Download

Splits files into bounded chunks for upload and streams downloads to disk,
both through the bounded reader/writer pipeline.
"""

from .pipeline import ChunkPipeline, read_chunks
from .splitter import FileSplitter
from .uploader import ChunkUploader, UploadResult
from .downloader import StreamDownloader, DownloadProgress
from .protocol import Transfer, Chunk, ChunkArtifact

__all__ = [
    'ChunkPipeline',
    'read_chunks',
    'FileSplitter',
    'ChunkUploader',
    'UploadResult',
    'StreamDownloader',
    'DownloadProgress',
    'Transfer',
    'Chunk',
    'ChunkArtifact',
]
