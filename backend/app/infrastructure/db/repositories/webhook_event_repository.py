"""
Webhook Event Repository

Tracks provider event ids that were fully handled.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import PaymentProvider
from app.infrastructure.db.database import dialect_insert
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.webhook_event import ProcessedWebhookEvent


logger = logging.getLogger(__name__)


class WebhookEventRepository:
    """Dedup ledger for webhook deliveries."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def is_processed(self, event_id: str) -> bool:
        """Check if a webhook event has already been handled."""
        return await self.session.get(ProcessedWebhookEvent, event_id) is not None

    async def mark_processed(
        self,
        event_id: str,
        provider: PaymentProvider,
        event_type: str,
    ) -> None:
        """
        Record an event as handled.

        Concurrent deliveries of the same id may both get here; the insert
        ignores the conflict so the second one still returns normally.
        """
        stmt = (
            dialect_insert(self.session, ProcessedWebhookEvent)
            .values(
                event_id=event_id,
                provider=provider.value,
                event_type=event_type,
                processed_at=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["event_id"])
        )
        await self.session.execute(stmt)
        logger.debug(f"Marked {provider.value} event {event_id} ({event_type}) as processed")
