"""Blob storage capability used for room images.

The core only talks to :class:`BlobStore`; :class:`LocalBlobStore` keeps files
on disk and is the default when no hosted provider is wired in.
"""
from __future__ import annotations

import logging
import uuid
from pathlib import Path, PurePosixPath
from typing import Optional, Protocol

from .config import get_settings
from .errors import InvalidUploadError
from .schemas import StoredBlob

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    def store(self, data: bytes, filename: str, folder: str = "roomlink") -> StoredBlob: ...

    def delete(self, blob_id: str) -> bool: ...


class LocalBlobStore:
    def __init__(
        self,
        root: Optional[Path] = None,
        base_url: Optional[str] = None,
        max_bytes: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.root = Path(root or settings.upload_dir).resolve()
        self.base_url = (base_url or settings.upload_base_url).rstrip("/")
        self.max_bytes = max_bytes if max_bytes is not None else settings.max_upload_bytes

    def _path_for(self, blob_id: str) -> Path:
        path = (self.root / blob_id).resolve()
        if self.root not in path.parents:
            raise InvalidUploadError("Invalid file id")
        return path

    def store(self, data: bytes, filename: str, folder: str = "roomlink") -> StoredBlob:
        if not data:
            raise InvalidUploadError("No file provided")
        if len(data) > self.max_bytes:
            raise InvalidUploadError(f"File size exceeds maximum limit of {self.max_bytes // (1024 * 1024)}MB")

        suffix = PurePosixPath(filename).suffix.lower()
        blob_id = f"{folder.strip('/')}/{uuid.uuid4().hex}{suffix}"
        destination = self._path_for(blob_id)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)

        logger.info("File stored locally: %s", blob_id)
        return StoredBlob(
            id=blob_id,
            url=f"{self.base_url}/uploads/{blob_id}",
            size=len(data),
            format=suffix.lstrip("."),
        )

    def delete(self, blob_id: str) -> bool:
        path = self._path_for(blob_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info("File deleted locally: %s", blob_id)
        return True
