"""
Supabase Storage Service

Uploads gallery images to a Supabase Storage bucket and resolves their
public URLs. The supabase client is synchronous, so calls are pushed to a
worker thread.
"""

import asyncio
import logging
from typing import Optional
from uuid import uuid4

from supabase import create_client, Client
from supabase.lib.client_options import ClientOptions

from app.config.settings import settings
from app.infrastructure.exceptions import StorageError


logger = logging.getLogger(__name__)


def build_storage_path(user_id: Optional[str], filename: str) -> str:
    """Unique object path: <user or public>/<uuid>.<ext>."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    owner = user_id or "public"
    return f"{owner}/{uuid4().hex}.{extension}"


class SupabaseStorage:
    """
    Thin wrapper over ``client.storage`` for one bucket.

    Singleton so the process shares one HTTP client.
    """

    _instance: Optional["SupabaseStorage"] = None
    _client: Optional[Client] = None

    def __new__(cls) -> "SupabaseStorage":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        self.bucket = settings.storage_bucket

    @property
    def client(self) -> Client:
        if self._client is None:
            options = ClientOptions(storage_client_timeout=60)
            SupabaseStorage._client = create_client(
                settings.supabase_url,
                settings.supabase_service_role_key,
                options,
            )
        return self._client

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        """
        Upload bytes to the bucket.

        Returns:
            Public URL of the stored object
        """
        bucket = self.client.storage.from_(self.bucket)
        try:
            await asyncio.to_thread(
                bucket.upload,
                path,
                content,
                {"content-type": content_type, "upsert": "false"},
            )
        except Exception as e:
            logger.error(f"Failed to upload {path} to bucket {self.bucket}: {e}")
            raise StorageError(
                f"Failed to upload image: {e}",
                details={"bucket": self.bucket, "path": path},
                original_error=e,
            )

        logger.info(f"Uploaded {len(content)} bytes to {self.bucket}/{path}")
        return self.public_url(path)

    def public_url(self, path: str) -> str:
        """Public URL for an object in the bucket."""
        return self.client.storage.from_(self.bucket).get_public_url(path)


def get_storage() -> SupabaseStorage:
    """Dependency provider for the storage service."""
    return SupabaseStorage()
