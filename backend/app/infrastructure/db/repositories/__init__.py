"""
Repository Layer for the Gallery backend

Exports all repository classes for dependency injection.
"""

from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from app.infrastructure.db.repositories.purchase_repository import (
    PurchaseRepository,
)
from app.infrastructure.db.repositories.image_repository import (
    ImageRepository,
)
from app.infrastructure.db.repositories.webhook_event_repository import (
    WebhookEventRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    # Repositories
    "SubscriptionRepository",
    "PurchaseRepository",
    "ImageRepository",
    "WebhookEventRepository",
]
