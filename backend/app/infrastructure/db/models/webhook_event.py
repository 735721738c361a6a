"""
Processed Webhook Event Model

Records webhook deliveries that were fully handled so redeliveries can be
acknowledged without touching subscription or purchase rows again.
"""

from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from app.infrastructure.db.models.base import utcnow


class ProcessedWebhookEvent(SQLModel, table=True):
    """Maps to the 'processed_webhook_events' table."""

    __tablename__ = "processed_webhook_events"

    event_id: str = Field(primary_key=True, max_length=255)
    provider: str = Field(max_length=20)
    event_type: str = Field(max_length=100)
    processed_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)
