"""
SQLModel ORM Models for the Gallery backend

Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import (
    TimestampMixin,
    UUIDMixin,
    utcnow,
)
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.models.purchase import PurchaseModel
from app.infrastructure.db.models.image import ImageModel, ImageDownloadModel
from app.infrastructure.db.models.webhook_event import ProcessedWebhookEvent


__all__ = [
    # Base
    "TimestampMixin",
    "UUIDMixin",
    "utcnow",
    # Tables
    "SubscriptionModel",
    "PurchaseModel",
    "ImageModel",
    "ImageDownloadModel",
    "ProcessedWebhookEvent",
]
