"""
File Store

Delete and list operations on the served directory tree.
"""

import shutil
import logging
from pathlib import Path

from .receiver import resolve_under
from ..errors import StoreError
from ..transfer.protocol import INVALID_URL
from ..utils import format_size, from_now

logger = logging.getLogger(__name__)

SIZE_WIDTH = 12
MODIFIED_WIDTH = 15


class FileStore:
    """Served root directory: lookup, delete, listing."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._ensure_root()

    def _ensure_root(self):
        """Create the root directory if it doesn't exist."""
        self.root.mkdir(parents=True, exist_ok=True)

    def resolve(self, path: str) -> Path:
        """
        Resolve a request path under the root.

        Raises:
            StoreError: INVALID_URL if the path escapes the root
        """
        target = resolve_under(self.root, path)
        if target is None:
            raise StoreError(INVALID_URL)
        return target

    def delete(self, path: str):
        """
        Delete a file or directory tree. A missing path is not an error.

        Raises:
            StoreError: INVALID_URL for an empty path or the root itself,
                500 with the OS error text if removal fails
        """
        if not path.strip('/'):
            raise StoreError(INVALID_URL)

        target = self.resolve(path)
        if target == self.root.resolve():
            raise StoreError(INVALID_URL)

        logger.info(f"delete path: {target}")

        try:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            elif target.exists() or target.is_symlink():
                target.unlink()
        except OSError as e:
            raise StoreError(str(e), 500) from e

    def listing(self, path: str = '') -> str:
        """
        Format a directory as a plain-text table.

        Raises:
            StoreError: 400 with the OS error text if the directory can't be read
        """
        target = self.resolve(path)

        try:
            entries = sorted(target.iterdir(), key=lambda p: p.name)
            rows = [self._format_row(entry) for entry in entries]
        except OSError as e:
            raise StoreError(str(e), 400) from e

        header = 'Size'.ljust(SIZE_WIDTH) + '\t' + 'Modified'.ljust(MODIFIED_WIDTH) + '\tName\n'
        return header + ''.join(rows)

    def _format_row(self, entry: Path) -> str:
        stat = entry.stat()
        name = entry.name + '/' if entry.is_dir() else entry.name
        return (
            format_size(stat.st_size).ljust(SIZE_WIDTH) + '\t'
            + from_now(stat.st_mtime).ljust(MODIFIED_WIDTH) + '\t'
            + name + '\n'
        )

