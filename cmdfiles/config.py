"""
Configuration Management

Handles the client endpoint configuration persisted in the scratch area,
transfer tuning knobs, and the server settings.

Design Decision: Where the endpoint lives
=========================================

Options Considered:
1. Module-level global read at import time
   - Easy to reach from anywhere
   - Hidden state, hard to test

2. Explicit config object built once at startup
   - Passed to whoever builds URLs
   - Trivial to construct in tests

Decision: Explicit ClientConfig
- Loaded once by the CLI from {scratch}/config.json
- Environment variables (CMDFILES_*) override the file
- Handed to TransferClient, never stored globally

Scratch Layout:
```
{tempdir}/cmdfiles/
├── config.json                       # {"host": ..., "port": ...}
└── {uuid}-{index}_{basename}         # chunk artifacts, purged at start
```
"""

import os
import json
import shutil
import logging
import tempfile
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

MiB = 1024 * 1024

# Client side: largest single request body the client produces
MAX_UPLOAD_SIZE = 5 * MiB

# Server side: largest request body the receiver accepts
MAX_REQUEST_SIZE = 10 * MiB

PIPELINE_DEPTH = 5

CONFIG_FILENAME = 'config.json'


def default_scratch_dir() -> Path:
    """Well-known scratch directory shared by all client invocations."""
    return Path(tempfile.gettempdir()) / 'cmdfiles'


class ScratchArea:
    """
    Process-local scratch directory.

    Holds the persisted endpoint configuration and ephemeral chunk
    artifacts. Everything except the configuration file is deleted by
    purge(), which the CLI runs once at startup.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else default_scratch_dir()
        self.config_path = self.path / CONFIG_FILENAME

    def ensure(self):
        """Create the scratch directory if it doesn't exist."""
        self.path.mkdir(parents=True, exist_ok=True)

    def purge(self) -> int:
        """
        Remove every entry except the configuration file.

        Returns:
            Number of entries removed
        """
        self.ensure()
        removed = 0

        for entry in self.path.iterdir():
            if entry == self.config_path:
                continue
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry, ignore_errors=True)
            else:
                entry.unlink(missing_ok=True)
            removed += 1

        if removed:
            logger.debug(f"Purged {removed} scratch entries from {self.path}")
        return removed

    def artifact_path(self, transfer_id: str, index: int, basename: str) -> Path:
        """Path of the on-disk artifact for one chunk."""
        return self.path / f"{transfer_id}-{index}_{basename}"

    def discard(self, transfer_id: str) -> int:
        """
        Remove every artifact left behind by one transfer.

        Returns:
            Number of artifacts removed
        """
        removed = 0
        for entry in self.path.glob(f"{transfer_id}-*"):
            entry.unlink(missing_ok=True)
            removed += 1

        if removed:
            logger.debug(f"Discarded {removed} unsent artifacts of transfer {transfer_id}")
        return removed


def join_url(first: str, second: str) -> str:
    """Join two URL pieces with exactly one slash between them."""
    if second and not second.startswith('/'):
        return f"{first}/{second}"
    return first + second


@dataclass
class ClientConfig:
    """
    Remote endpoint configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (CMDFILES_HOST, CMDFILES_PORT)
    2. Config file ({scratch}/config.json)
    3. Empty (commands other than `config` then refuse to run)
    """
    host: str = ''
    port: str = ''
    scratch: ScratchArea = field(default_factory=ScratchArea)

    @classmethod
    def from_file(cls, scratch: Optional[ScratchArea] = None) -> 'ClientConfig':
        """Load configuration from the scratch area's JSON file."""
        scratch = scratch or ScratchArea()
        config = cls(scratch=scratch)

        if not scratch.config_path.exists():
            return config

        try:
            with open(scratch.config_path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable config {scratch.config_path}: {e}")
            return config

        config.host = str(data.get('host', '') or '')
        config.port = str(data.get('port', '') or '')
        return config

    @classmethod
    def load(cls, scratch: Optional[ScratchArea] = None) -> 'ClientConfig':
        """Load from file, then apply environment overrides."""
        load_dotenv()

        config = cls.from_file(scratch)
        config.host = os.getenv('CMDFILES_HOST', config.host)
        config.port = os.getenv('CMDFILES_PORT', config.port)
        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {'host': self.host, 'port': self.port}

    def save(self, host: str, port: str):
        """Persist a new endpoint to the scratch area."""
        logger.info(f"Saving config host: {host} port: {port}")
        self.host = host
        self.port = str(port)
        self.scratch.ensure()
        with open(self.scratch.config_path, 'w') as f:
            json.dump(self.to_dict(), f)

    def require(self):
        """Raise ConfigError unless both host and port are set."""
        if not self.host or not self.port:
            raise ConfigError("Remote endpoint not configured, run: cmdfiles config --host HOST --port PORT")

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def upload_url(self, path: str) -> str:
        return join_url(join_url(self.base_url, 'upload'), path)

    def download_url(self, path: str) -> str:
        return join_url(join_url(self.base_url, 'files'), path)

    def delete_url(self, path: str) -> str:
        return join_url(join_url(self.base_url, 'delete'), path)

    def list_url(self, path: str) -> str:
        return join_url(join_url(self.base_url, 'list'), path)


@dataclass
class TransferSettings:
    """Chunking knobs for one client."""
    max_upload_size: int = MAX_UPLOAD_SIZE
    # Files at or above this size are sent chunked
    chunk_threshold: int = MAX_UPLOAD_SIZE
    pipeline_depth: int = PIPELINE_DEPTH

    @property
    def download_chunk_size(self) -> int:
        return max(1, self.max_upload_size // 2)


@dataclass
class ServerConfig:
    """File store server configuration."""
    host: str = '0.0.0.0'
    port: int = 8081
    root: Path = field(default_factory=lambda: Path('./public'))
    max_request_size: int = MAX_REQUEST_SIZE
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'ServerConfig':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()
        config.host = os.getenv('CMDFILES_SERVER_HOST', config.host)
        config.port = int(os.getenv('CMDFILES_SERVER_PORT', config.port))

        root = os.getenv('CMDFILES_SERVER_ROOT')
        if root:
            config.root = Path(root)

        config.max_request_size = int(
            os.getenv('CMDFILES_MAX_REQUEST_SIZE', config.max_request_size)
        )
        config.log_level = os.getenv('CMDFILES_LOG_LEVEL', config.log_level)

        return config
