"""
Error Taxonomy

Every failure a transfer can hit is raised as one of these. The CLI catches
CmdfilesError, prints the message and exits non-zero.
"""

from typing import Optional


class CmdfilesError(Exception):
    """Base class for all transfer errors."""


class ConfigError(CmdfilesError):
    """Remote endpoint is not configured."""


class LocalFileError(CmdfilesError):
    """Local source is unusable, or the download destination can't be written."""


class RemoteError(CmdfilesError):
    """Transport failure or non-success response from the remote store."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class StreamError(CmdfilesError):
    """A streamed body or file could not be read to the end."""


class StoreError(CmdfilesError):
    """Server-side rejection, answered with a short token and a status code."""

    def __init__(self, token: str, status_code: int = 400):
        super().__init__(token)
        self.token = token
        self.status_code = status_code
