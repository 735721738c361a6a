"""
Access Rules

Derives what a user may do from their subscription row and purchases.
Pure functions; callers load the rows.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from app.domain.image import DownloadType, ImageAccessResponse
from app.domain.purchase import PaymentStatus, Purchase, PurchaseSummary
from app.domain.subscription import PlanType, Subscription, SubscriptionStatus


RECENT_PURCHASE_WINDOW = timedelta(days=30)


class AccessLevel(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class UserType(str, Enum):
    FREE = "free"
    SUBSCRIPTION = "subscription"
    PURCHASER = "purchaser"
    MIXED = "mixed"


ACCESS_LEVELS: dict[PlanType, AccessLevel] = {
    PlanType.STANDARD: AccessLevel.BASIC,
    PlanType.PREMIUM: AccessLevel.PRO,
    PlanType.COMMERCIAL: AccessLevel.ENTERPRISE,
}

PLAN_FEATURE_FLAGS: dict[PlanType, list[str]] = {
    PlanType.STANDARD: ["unlimited_downloads", "basic_support"],
    PlanType.PREMIUM: ["unlimited_downloads", "priority_support", "early_access"],
    PlanType.COMMERCIAL: [
        "unlimited_downloads",
        "commercial_license",
        "priority_support",
        "early_access",
    ],
}


class SubscriptionAccess(BaseModel):
    """Response of GET /subscription/access."""
    has_active_subscription: bool = False
    subscription_type: Optional[PlanType] = None
    can_download: bool = False
    can_view_gallery: bool = False
    access_level: AccessLevel = AccessLevel.FREE
    subscription_expires_at: Optional[datetime] = None
    features: list[str] = Field(default_factory=list)
    user_type: UserType = UserType.FREE
    purchase_summary: Optional[PurchaseSummary] = None


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_subscription_active(subscription: Optional[Subscription], now: datetime) -> bool:
    """Active means status ``active`` and the period has not ended yet."""
    if subscription is None or subscription.status != SubscriptionStatus.ACTIVE:
        return False
    if subscription.current_period_end is None:
        return False
    return _aware(subscription.current_period_end) >= _aware(now)


def summarize_purchases(purchases: list[Purchase], now: datetime) -> PurchaseSummary:
    completed = [p for p in purchases if p.payment_status == PaymentStatus.COMPLETED]
    cutoff = _aware(now) - RECENT_PURCHASE_WINDOW
    return PurchaseSummary(
        total_purchases=len(completed),
        total_spent=sum(p.amount_paid or 0 for p in completed),
        unique_images=len({p.image_id for p in completed}),
        has_recent_purchases=any(
            p.purchased_at is not None and _aware(p.purchased_at) > cutoff for p in completed
        ),
    )


def build_access(
    subscription: Optional[Subscription],
    purchases: list[Purchase],
    now: Optional[datetime] = None,
) -> SubscriptionAccess:
    """
    Compute the access summary for an authenticated user.

    Args:
        subscription: The user's subscription row, if any
        purchases: The user's purchases
        now: Reference time (defaults to current UTC time)
    """
    now = now or datetime.now(timezone.utc)
    summary = summarize_purchases(purchases, now)
    active = is_subscription_active(subscription, now)
    has_purchases = summary.total_purchases > 0

    if active and has_purchases:
        user_type = UserType.MIXED
    elif active:
        user_type = UserType.SUBSCRIPTION
    elif has_purchases:
        user_type = UserType.PURCHASER
    else:
        user_type = UserType.FREE

    if active:
        return SubscriptionAccess(
            has_active_subscription=True,
            subscription_type=subscription.plan_type,
            can_download=True,
            can_view_gallery=True,
            access_level=ACCESS_LEVELS[subscription.plan_type],
            subscription_expires_at=subscription.current_period_end,
            features=list(PLAN_FEATURE_FLAGS[subscription.plan_type]),
            user_type=user_type,
            purchase_summary=summary,
        )

    # Gallery stays viewable without a subscription, downloads do not
    return SubscriptionAccess(
        can_view_gallery=True,
        user_type=user_type,
        purchase_summary=summary,
    )


def check_image_access(
    image_id: str,
    subscription: Optional[Subscription],
    has_purchased: bool,
    now: Optional[datetime] = None,
) -> ImageAccessResponse:
    """A user may download an image with an active subscription or a completed purchase of it."""
    now = now or datetime.now(timezone.utc)
    if is_subscription_active(subscription, now):
        return ImageAccessResponse(image_id=image_id, can_download=True, reason=DownloadType.SUBSCRIPTION)
    if has_purchased:
        return ImageAccessResponse(image_id=image_id, can_download=True, reason=DownloadType.PURCHASE)
    return ImageAccessResponse(image_id=image_id, can_download=False)
