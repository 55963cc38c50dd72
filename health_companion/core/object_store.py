"""
Object storage for uploaded report files.

Thin wrapper around the Cloudinary upload API. The account secret stays
on the server; callers only ever see the returned public URL.
"""

import io
from dataclasses import dataclass
from typing import Protocol

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from health_companion.config import settings
from health_companion.core.errors import UploadError
from health_companion.utils.logger import get_logger

logger = get_logger("object_store")


@dataclass(frozen=True)
class StoredObject:
    """A file accepted by the object store."""
    url: str
    public_id: str
    resource_type: str = "auto"


class ObjectStore(Protocol):
    """Stores raw bytes under a folder and returns a public URL."""

    def put(self, data: bytes, file_name: str, folder: str) -> StoredObject:
        ...


class CloudinaryObjectStore:
    """
    ``ObjectStore`` backed by Cloudinary.

    Credentials are checked on the first upload, not at construction,
    so requests rejected before storage never touch the configuration.
    """

    def __init__(self):
        self._configured = False

    def _configure(self) -> None:
        if self._configured:
            return
        settings.require(
            "cloudinary_cloud_name",
            "cloudinary_api_key",
            "cloudinary_api_secret",
        )
        cloudinary.config(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            secure=True,
        )
        self._configured = True

    def put(self, data: bytes, file_name: str, folder: str) -> StoredObject:
        """
        Upload bytes as-is; Cloudinary detects the resource type.

        Raises:
            ConfigurationError: Cloudinary credentials are missing
            UploadError: Any provider or transport failure
        """
        self._configure()

        buffer = io.BytesIO(data)
        buffer.name = file_name

        try:
            result = cloudinary.uploader.upload(
                buffer,
                resource_type="auto",
                folder=folder,
                timeout=settings.upload_timeout_seconds,
            )
        except (CloudinaryError, OSError) as exc:
            logger.error("Cloudinary upload error", file_name=file_name, error=str(exc))
            raise UploadError(str(exc) or "Upload failed") from exc

        return StoredObject(
            url=result.get("secure_url", ""),
            public_id=result.get("public_id", ""),
            resource_type=result.get("resource_type", "auto"),
        )
