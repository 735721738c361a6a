"""
Image API Routes

Gallery listing, uploads to Supabase Storage, per-image download access
and download tracking.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile, status

from app.api.dependencies import (
    CurrentUserId,
    ImageRepoDep,
    OptionalUserId,
    PurchaseRepoDep,
    StorageDep,
    SubscriptionRepoDep,
)
from app.config.settings import get_settings
from app.domain.access import check_image_access
from app.domain.image import DownloadStats, GalleryPage, Image, ImageAccessResponse, RecordDownloadRequest
from app.infrastructure.storage import build_storage_path


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/images", response_model=GalleryPage)
async def list_images(
    images: ImageRepoDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    """Paginated gallery, newest first."""
    items, total = await images.list_page(page, limit)
    return GalleryPage(images=items, page=page, limit=limit, total=total)


@router.get("/images/{image_id}", response_model=Image)
async def get_image(image_id: str, images: ImageRepoDep):
    image = await images.get(image_id)
    if not image:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    return image


@router.post("/images", response_model=Image, status_code=status.HTTP_201_CREATED)
async def upload_image(
    user_id: CurrentUserId,
    images: ImageRepoDep,
    storage: StorageDep,
    file: UploadFile = File(...),
    width: Optional[int] = Form(None),
    height: Optional[int] = Form(None),
):
    """Upload an image to the storage bucket and record its metadata."""
    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type: {content_type or 'unknown'}",
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    if len(content) > get_settings().max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="File too large",
        )

    filename = file.filename or "upload"
    path = build_storage_path(user_id, filename)
    url = await storage.upload(path, content, content_type)

    return await images.create(
        Image(
            user_id=user_id,
            storage_path=path,
            storage_url=url,
            original_name=filename,
            mime_type=content_type,
            size_bytes=len(content),
            width=width,
            height=height,
        )
    )


async def _image_access(
    image_id: str,
    user_id: Optional[str],
    subscriptions: SubscriptionRepoDep,
    purchases: PurchaseRepoDep,
) -> ImageAccessResponse:
    if not user_id:
        return ImageAccessResponse(image_id=image_id, can_download=False)
    subscription = await subscriptions.get_by_user_id(user_id)
    purchased = await purchases.has_purchased(user_id, image_id)
    return check_image_access(image_id, subscription, purchased)


@router.get("/images/{image_id}/access", response_model=ImageAccessResponse)
async def get_image_access(
    image_id: str,
    user_id: OptionalUserId,
    images: ImageRepoDep,
    subscriptions: SubscriptionRepoDep,
    purchases: PurchaseRepoDep,
):
    """Whether the caller may download this image, and why."""
    if not await images.get(image_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    return await _image_access(image_id, user_id, subscriptions, purchases)


@router.post("/downloads/record")
async def record_download(
    request: RecordDownloadRequest,
    user_id: CurrentUserId,
    images: ImageRepoDep,
    subscriptions: SubscriptionRepoDep,
    purchases: PurchaseRepoDep,
):
    """Record a download after checking the caller is entitled to it."""
    image = await images.get(request.image_id)
    if not image:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")

    access = await _image_access(image.id, user_id, subscriptions, purchases)
    if not access.can_download:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="An active subscription or a purchase is required to download this image",
        )

    await images.record_download(user_id, image.id, access.reason)
    logger.info(f"User {user_id} downloaded image {image.id} ({access.reason.value})")
    return {"success": True, "download_type": access.reason}


@router.get("/downloads/stats", response_model=DownloadStats)
async def get_download_stats(user_id: CurrentUserId, images: ImageRepoDep):
    return await images.download_stats(user_id)
