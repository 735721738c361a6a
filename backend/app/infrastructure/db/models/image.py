"""
Image Database Models

Uploaded image metadata and per-user download records.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime
from sqlmodel import Field

from app.infrastructure.db.models.base import UUIDMixin, utcnow


class ImageModel(UUIDMixin, table=True):
    """Maps to the 'images' table."""

    __tablename__ = "images"

    user_id: Optional[UUID] = Field(default=None, index=True)
    storage_path: str = Field(unique=True)
    storage_url: str
    original_name: str
    mime_type: str = Field(max_length=100)
    size_bytes: int = Field(default=0)
    width: Optional[int] = None
    height: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)


class ImageDownloadModel(UUIDMixin, table=True):
    """Maps to the 'image_downloads' table."""

    __tablename__ = "image_downloads"

    user_id: UUID = Field(index=True)
    image_id: UUID = Field(index=True)
    download_type: str = Field(default="subscription", max_length=20)
    downloaded_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
