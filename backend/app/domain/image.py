"""
Image Domain Models

Uploaded asset metadata and gallery DTOs.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, computed_field


class DownloadType(str, Enum):
    """How a download was entitled."""
    SUBSCRIPTION = "subscription"
    PURCHASE = "purchase"
    FREE = "free"


class Image(BaseModel):
    """Uploaded image metadata."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    user_id: Optional[str] = None
    storage_path: str
    storage_url: str
    original_name: str
    mime_type: str
    size_bytes: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
    created_at: Optional[datetime] = None


class GalleryPage(BaseModel):
    """One page of the gallery listing."""
    images: list[Image]
    page: int
    limit: int
    total: int

    @computed_field
    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


class RecordDownloadRequest(BaseModel):
    """Request to record an image download."""
    image_id: str = Field(..., min_length=1)
    download_type: DownloadType = DownloadType.SUBSCRIPTION


class ImageAccessResponse(BaseModel):
    """Whether the caller may download a given image."""
    image_id: str
    can_download: bool
    reason: Optional[DownloadType] = None


class DownloadStats(BaseModel):
    """Download counts for the signed-in user."""
    this_month: int = 0
    all_time: int = 0
    last_download: Optional[datetime] = None
