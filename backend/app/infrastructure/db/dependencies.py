"""
Dependency Injection Providers for the Gallery backend

Provides FastAPI dependencies for database sessions and repositories.
All repositories of a request share one session, so a handler's writes
commit or roll back together.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.database import get_session
from app.infrastructure.db.repositories import (
    ImageRepository,
    PurchaseRepository,
    SubscriptionRepository,
    WebhookEventRepository,
)


# Type alias for session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_subscription_repository(
    session: SessionDep,
) -> AsyncGenerator[SubscriptionRepository, None]:
    """
    Dependency provider for SubscriptionRepository.

    Usage:
        @router.get("/subscriptions/sync")
        async def sync(repo: SubscriptionRepoDep):
            ...
    """
    yield SubscriptionRepository(session)


async def get_purchase_repository(
    session: SessionDep,
) -> AsyncGenerator[PurchaseRepository, None]:
    """Dependency provider for PurchaseRepository."""
    yield PurchaseRepository(session)


async def get_image_repository(
    session: SessionDep,
) -> AsyncGenerator[ImageRepository, None]:
    """Dependency provider for ImageRepository."""
    yield ImageRepository(session)


async def get_webhook_event_repository(
    session: SessionDep,
) -> AsyncGenerator[WebhookEventRepository, None]:
    """Dependency provider for WebhookEventRepository."""
    yield WebhookEventRepository(session)


# Type aliases for repository dependencies
SubscriptionRepoDep = Annotated[
    SubscriptionRepository,
    Depends(get_subscription_repository)
]
PurchaseRepoDep = Annotated[
    PurchaseRepository,
    Depends(get_purchase_repository)
]
ImageRepoDep = Annotated[
    ImageRepository,
    Depends(get_image_repository)
]
WebhookEventRepoDep = Annotated[
    WebhookEventRepository,
    Depends(get_webhook_event_repository)
]
