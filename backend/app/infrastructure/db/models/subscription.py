"""
Subscription Database Model

One row per user. The provider id columns are mutually exclusive:
whichever provider last activated the row owns it.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field

from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class SubscriptionModel(UUIDMixin, TimestampMixin, table=True):
    """Maps to the 'subscriptions' table."""

    __tablename__ = "subscriptions"

    user_id: UUID = Field(unique=True, index=True, nullable=False)

    # Plan
    plan_type: str = Field(default="standard", max_length=20)
    billing_interval: str = Field(default="monthly", max_length=20)
    status: str = Field(default="active", max_length=20, index=True)
    price_monthly: float = Field(default=0.0)
    price_yearly: float = Field(default=0.0)
    features: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Provider ownership
    payment_provider: Optional[str] = Field(default=None, max_length=20)
    stripe_customer_id: Optional[str] = Field(default=None, index=True)
    stripe_subscription_id: Optional[str] = Field(default=None, unique=True, index=True)
    paypal_subscription_id: Optional[str] = Field(default=None, unique=True, index=True)
    crypto_charge_id: Optional[str] = Field(default=None, unique=True, index=True)

    # Billing period
    cancel_at_period_end: bool = Field(default=False)
    current_period_start: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    current_period_end: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
