"""
Upload relay for Health Companion.

Forwards raw report bytes to the object store and hands back the public
URL. It does not validate, transform or retry; size and type policy is
up to the caller.
"""

import asyncio
from typing import Optional

from health_companion.config import settings
from health_companion.core.errors import UploadError
from health_companion.core.object_store import ObjectStore, StoredObject
from health_companion.utils.logger import get_logger

logger = get_logger("upload_relay")


class UploadRelay:
    """Trusted-side bridge between the client and the object store."""

    def __init__(self, store: ObjectStore, folder: Optional[str] = None):
        self.store = store
        self.folder = folder or settings.upload_folder

    async def upload(self, data: bytes, file_name: str) -> StoredObject:
        """
        Store one file.

        Args:
            data: Raw file bytes
            file_name: Original filename

        Returns:
            StoredObject with a non-empty public URL

        Raises:
            UploadError: Provider failure or a response without a URL
        """
        stored = await asyncio.to_thread(self.store.put, data, file_name, self.folder)

        if not stored.url:
            raise UploadError("Storage provider returned no URL")

        # Resource type is left to provider detection; record what it chose
        logger.info(
            "File stored",
            file_name=file_name,
            size_bytes=len(data),
            folder=self.folder,
            public_id=stored.public_id,
            resource_type=stored.resource_type,
        )
        return stored
