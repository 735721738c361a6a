"""
Payment Events

A single tagged-variant event type that every provider translates into.
The reconciler consumes only these variants, so provider differences end
at the translation layer.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from app.domain.purchase import LicenseType, Purchase
from app.domain.subscription import (
    BillingInterval,
    PaymentProvider,
    PlanType,
    Subscription,
    SubscriptionStatus,
)


def normalize_uuid(value: Optional[object]) -> Optional[str]:
    """
    Return the canonical string form of a UUID-valued id, or None.

    Placeholders such as "anonymous", blanks and non-UUID strings count
    as missing.
    """
    if value is None:
        return None
    try:
        return str(UUID(str(value).strip()))
    except ValueError:
        return None


class SubscriptionActivated(BaseModel):
    """A provider confirmed that a subscription is paid and active."""
    kind: Literal["subscription_activated"] = "subscription_activated"
    provider: PaymentProvider
    user_id: Optional[str] = None
    external_id: str
    plan_type: PlanType
    billing_interval: BillingInterval = BillingInterval.MONTHLY
    period_start: Optional[datetime] = None
    customer_id: Optional[str] = None


class SubscriptionStatusChanged(BaseModel):
    """A provider reported a status transition for an existing subscription."""
    kind: Literal["subscription_status_changed"] = "subscription_status_changed"
    provider: PaymentProvider
    status: SubscriptionStatus
    user_id: Optional[str] = None
    external_id: Optional[str] = None
    cancel_at_period_end: Optional[bool] = None


class PurchaseCompleted(BaseModel):
    """A one-time image license payment completed."""
    kind: Literal["purchase_completed"] = "purchase_completed"
    provider: PaymentProvider
    external_id: str
    image_id: str
    license_type: LicenseType = LicenseType.STANDARD
    amount: int = 0
    currency: str = "usd"
    user_id: Optional[str] = None
    payment_id: Optional[str] = None


PaymentEvent = Annotated[
    Union[SubscriptionActivated, SubscriptionStatusChanged, PurchaseCompleted],
    Field(discriminator="kind"),
]


class ReconcileOutcome(str, Enum):
    """What reconciling an event did to the database."""
    CREATED = "created"
    UPDATED = "updated"
    DUPLICATE = "duplicate"
    DROPPED = "dropped"
    NOT_FOUND = "not_found"
    FAILED = "failed"


class ReconcileResult(BaseModel):
    """Result of reconciling one payment event. Never raised, always returned."""
    success: bool
    outcome: ReconcileOutcome
    error: Optional[str] = None
    subscription: Optional[Subscription] = None
    purchase: Optional[Purchase] = None

    @classmethod
    def failed(cls, error: str) -> "ReconcileResult":
        return cls(success=False, outcome=ReconcileOutcome.FAILED, error=error)

    @classmethod
    def dropped(cls, reason: str) -> "ReconcileResult":
        return cls(success=False, outcome=ReconcileOutcome.DROPPED, error=reason)
