"""
Document Storage

Files are written under ``settings.storage_root`` as
``<user id>/<application id>/<file name>``. Blocking file I/O runs in a
worker thread so the event loop is never held up.
"""

import asyncio
import logging
import uuid
from pathlib import Path

from admissions.core.config import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a file cannot be written or read."""


class LocalDocumentStorage:
    def __init__(self, root: str | Path | None = None):
        self.root = Path(root or settings.storage_root).resolve()

    def _resolve(self, relative_path: str) -> Path:
        path = (self.root / relative_path).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Path escapes storage root: {relative_path}")
        return path

    def _write(self, relative_path: str, content: bytes) -> str:
        path = self._resolve(relative_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            # Never overwrite; keep both files
            path = path.with_name(f"{path.stem}_{uuid.uuid4().hex[:8]}{path.suffix}")
        path.write_bytes(content)
        return path.relative_to(self.root).as_posix()

    async def save(self, relative_path: str, content: bytes) -> str:
        """Write ``content`` and return the stored path relative to the root."""
        try:
            stored = await asyncio.to_thread(self._write, relative_path, content)
        except OSError as e:
            logger.error(f"Failed to store document at {relative_path}: {e}")
            raise StorageError(str(e)) from e
        logger.info(f"Stored document {stored} ({len(content)} bytes)")
        return stored

    async def read(self, relative_path: str) -> bytes:
        path = self._resolve(relative_path)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise StorageError(str(e)) from e

    async def delete(self, relative_path: str) -> None:
        path = self._resolve(relative_path)
        await asyncio.to_thread(path.unlink, True)


def get_storage() -> LocalDocumentStorage:
    """FastAPI dependency returning the configured storage backend."""
    return LocalDocumentStorage()
