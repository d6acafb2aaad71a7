"""
cmdfiles - HTTP file transfer with chunked uploads and streamed downloads.
"""

__version__ = "1.0.0"
