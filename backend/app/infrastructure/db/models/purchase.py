"""
Purchase Database Model

Completed one-time license purchases. Each provider key is unique so a
repeated completion for the same session/order/charge cannot insert twice.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime
from sqlmodel import Field

from app.infrastructure.db.models.base import UUIDMixin, utcnow


class PurchaseModel(UUIDMixin, table=True):
    """Maps to the 'purchases' table."""

    __tablename__ = "purchases"

    image_id: UUID = Field(index=True, nullable=False)
    user_id: Optional[UUID] = Field(default=None, index=True)
    license_type: str = Field(default="standard", max_length=20)
    amount_paid: int = Field(default=0)
    currency: str = Field(default="usd", max_length=3)
    payment_method: str = Field(max_length=20)
    payment_status: str = Field(default="completed", max_length=20)

    stripe_session_id: Optional[str] = Field(default=None, unique=True, index=True)
    paypal_order_id: Optional[str] = Field(default=None, unique=True, index=True)
    paypal_payment_id: Optional[str] = Field(default=None)
    crypto_charge_id: Optional[str] = Field(default=None, unique=True, index=True)

    purchased_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
