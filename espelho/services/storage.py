"""
Storage Service
Handles file storage - supports Google Cloud Storage and local filesystem.
Objects are namespaced as <owner_id>/<folder>/<timestamp>_<name>.
"""

import logging
import re
import time
from pathlib import Path
from typing import Optional, Tuple

from espelho.core.config import settings

logger = logging.getLogger(__name__)

FOLDERS = ("uploads", "results", "avatars", "products", "models", "banners")

FILES_PREFIX = "/files/"

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


class StorageError(Exception):
    """Raised when an object cannot be stored or read."""


def safe_filename(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9.-]", "_", name or "file")


def extension_for(content_type: str) -> str:
    return EXTENSIONS.get((content_type or "").lower(), "jpg")


def content_type_for(path: str) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), "application/octet-stream")


class StorageService:
    """Service for file storage operations."""

    def __init__(self, base_path: Optional[str] = None, use_gcs: Optional[bool] = None):
        self.use_gcs = settings.USE_GCS if use_gcs is None else use_gcs

        if self.use_gcs:
            from google.cloud import storage
            self.gcs_client = storage.Client(project=settings.GCP_PROJECT_ID or None)
            self.bucket = self.gcs_client.bucket(settings.GCS_BUCKET_ASSETS)
            logger.info(f"[Storage] Using Google Cloud Storage: {settings.GCS_BUCKET_ASSETS}")
        else:
            self.base_path = Path(base_path or settings.LOCAL_STORAGE_PATH)
            self.base_path.mkdir(parents=True, exist_ok=True)
            logger.info(f"[Storage] Using local storage: {self.base_path}")

    def build_path(self, owner_id: str, folder: str, filename: str) -> str:
        if folder not in FOLDERS:
            raise StorageError(f"Unknown storage folder: {folder}")
        timestamp = int(time.time() * 1000)
        return f"{owner_id}/{folder}/{timestamp}_{safe_filename(filename)}"

    async def upload(
        self,
        owner_id: str,
        folder: str,
        data: bytes,
        filename: str,
        content_type: str = "image/jpeg",
    ) -> Tuple[str, str]:
        """Store bytes under the owner's namespace. Returns (public_url, path)."""
        if not owner_id:
            raise StorageError("Storage upload requires an owner id")

        path = self.build_path(owner_id, folder, filename)
        await self.upload_bytes(data, path, content_type)
        logger.info(f"[Storage] Uploaded {len(data)} bytes to {path}")
        return self.get_public_url(path), path

    async def upload_bytes(self, data: bytes, path: str, content_type: str = "image/jpeg") -> str:
        """Upload bytes at an explicit path and return its URL."""
        if self.use_gcs:
            blob = self.bucket.blob(path)
            blob.upload_from_string(data, content_type=content_type)
        else:
            file_path = self._local_path(path)
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, "wb") as f:
                f.write(data)
        return self.get_public_url(path)

    async def get_file(self, path: str) -> bytes:
        """Get file contents."""
        if self.use_gcs:
            from google.api_core.exceptions import NotFound
            try:
                return self.bucket.blob(path).download_as_bytes()
            except NotFound:
                raise FileNotFoundError(path)

        file_path = self._local_path(path)
        if not file_path.is_file():
            raise FileNotFoundError(path)
        with open(file_path, "rb") as f:
            return f.read()

    async def delete_file(self, path: str):
        """Delete a single file. Missing files are ignored."""
        if self.use_gcs:
            blob = self.bucket.blob(path)
            if blob.exists():
                blob.delete()
                logger.info(f"[Storage] Deleted file: {path}")
            return

        file_path = self._local_path(path)
        if file_path.exists() and file_path.is_file():
            file_path.unlink()
            logger.info(f"[Storage] Deleted file: {path}")

    def get_public_url(self, path: str) -> str:
        """Files are always served through the API proxy endpoint."""
        return f"{FILES_PREFIX}{path}"

    def path_from_url(self, url: str) -> Optional[str]:
        if url and url.startswith(FILES_PREFIX):
            return url[len(FILES_PREFIX):]
        return None

    def _local_path(self, path: str) -> Path:
        base = self.base_path.resolve()
        file_path = (base / path).resolve()
        # Reject ../ traversal out of the storage root
        if base != file_path and base not in file_path.parents:
            raise StorageError(f"Invalid storage path: {path}")
        return file_path
