"""
Image Repository

Gallery listing, image metadata and download records.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.image import DownloadStats, DownloadType, Image
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.image import ImageDownloadModel, ImageModel
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid


logger = logging.getLogger(__name__)


class ImageRepository(BaseRepository[ImageModel]):
    """Repository for images and their download history."""

    def __init__(self, session: AsyncSession):
        super().__init__(ImageModel, session)

    async def get(self, image_id: str) -> Optional[Image]:
        """Get image metadata by id; None for unknown or malformed ids."""
        model = await self.get_by_id(image_id)
        return Image.model_validate(self._as_row(model)) if model else None

    async def list_page(self, page: int = 1, limit: int = 20) -> tuple[list[Image], int]:
        """
        One page of the gallery, newest first.

        Args:
            page: 1-based page number
            limit: Page size

        Returns:
            (images on the page, total image count)
        """
        offset = (max(page, 1) - 1) * limit
        statement = (
            select(ImageModel)
            .order_by(ImageModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(statement)
        images = [Image.model_validate(self._as_row(model)) for model in result.scalars().all()]
        return images, await self.count()

    async def create(self, image: Image) -> Image:
        """Store metadata for an uploaded image."""
        model = ImageModel(
            user_id=as_uuid(image.user_id) if image.user_id else None,
            storage_path=image.storage_path,
            storage_url=image.storage_url,
            original_name=image.original_name,
            mime_type=image.mime_type,
            size_bytes=image.size_bytes,
            width=image.width,
            height=image.height,
        )
        model = await self.add(model)
        logger.info(f"Stored image {model.id} at {model.storage_path}")
        return Image.model_validate(self._as_row(model))

    async def record_download(
        self,
        user_id: str,
        image_id: str,
        download_type: DownloadType,
    ) -> None:
        """Append a download record for usage tracking."""
        self.session.add(
            ImageDownloadModel(
                user_id=as_uuid(user_id),
                image_id=as_uuid(image_id),
                download_type=download_type.value,
            )
        )
        await self.session.flush()

    async def download_stats(self, user_id: str, now: Optional[datetime] = None) -> DownloadStats:
        """
        Download counts for a user: this calendar month (UTC) and all time.

        Args:
            user_id: Downloading user
            now: Reference time for the month window, defaults to utcnow
        """
        month_start = (now or utcnow()).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        owner = ImageDownloadModel.user_id == as_uuid(user_id)

        totals = await self.session.execute(
            select(func.count(), func.max(ImageDownloadModel.downloaded_at))
            .select_from(ImageDownloadModel)
            .where(owner)
        )
        all_time, last_download = totals.one()

        monthly = await self.session.execute(
            select(func.count())
            .select_from(ImageDownloadModel)
            .where(owner, ImageDownloadModel.downloaded_at >= month_start)
        )
        return DownloadStats(
            this_month=monthly.scalar_one(),
            all_time=all_time,
            last_download=last_download,
        )

    @staticmethod
    def _as_row(model: ImageModel) -> dict:
        return {
            "id": str(model.id),
            "user_id": str(model.user_id) if model.user_id else None,
            "storage_path": model.storage_path,
            "storage_url": model.storage_url,
            "original_name": model.original_name,
            "mime_type": model.mime_type,
            "size_bytes": model.size_bytes,
            "width": model.width,
            "height": model.height,
            "created_at": model.created_at,
        }
