"""
Object storage for uploaded blobs (notice images).

Objects live under ``STORAGE_DIR`` and are served as static files from
``STORAGE_PUBLIC_URL``.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from pathlib import Path, PurePosixPath

from app.core.config import settings
from app.core.exceptions import UpstreamError, ValidationError

logger = logging.getLogger(__name__)


def unique_object_name(filename: str | None, prefix: str = "") -> str:
    """``<prefix><epoch-ms>-<random>.<ext>`` keeping the upload's extension."""
    ext = PurePosixPath(filename or "").suffix.lower().lstrip(".") or "bin"
    return f"{prefix}{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"


class ObjectStorage:
    def __init__(self, root: str | Path | None = None, public_url: str | None = None) -> None:
        self.root = Path(root or settings.STORAGE_DIR).resolve()
        self.public_url = (public_url or settings.STORAGE_PUBLIC_URL).rstrip("/")

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root not in target.parents:
            raise ValidationError("Invalid object path")
        return target

    def prepare(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    async def upload(self, path: str, data: bytes) -> str:
        """Store *data* at *path*; return the stored path."""
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            logger.error("Upload of %s failed: %s", path, exc)
            raise UpstreamError("Could not store the uploaded file") from exc
        logger.info("Stored %s (%d bytes)", path, len(data))
        return path

    def get_public_url(self, path: str) -> str:
        return f"{self.public_url}/{PurePosixPath(path).as_posix()}"

    def path_for_url(self, url: str | None) -> str | None:
        """Inverse of :meth:`get_public_url`; ``None`` for foreign URLs."""
        prefix = f"{self.public_url}/"
        if not url or not url.startswith(prefix):
            return None
        return url[len(prefix) :]

    async def remove(self, path: str) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.unlink, True)
        except OSError as exc:
            raise UpstreamError("Could not remove the stored file") from exc
