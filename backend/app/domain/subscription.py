"""
Subscription Domain Models

Enums, plan catalog, period arithmetic and DTOs for the subscription
bounded context.
"""

import calendar
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class PaymentProvider(str, Enum):
    """Payment providers that can own a subscription or purchase."""
    STRIPE = "stripe"
    PAYPAL = "paypal"
    CRYPTO = "crypto"


class PlanType(str, Enum):
    """Subscription plan tiers."""
    STANDARD = "standard"
    PREMIUM = "premium"
    COMMERCIAL = "commercial"


class BillingInterval(str, Enum):
    """Billing interval for subscriptions."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionStatus(str, Enum):
    """Flat subscription status stored directly on the row."""
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# =============================================================================
# Plan Catalog
# =============================================================================

class SubscriptionPlan(BaseModel):
    """Static plan definition."""
    type: PlanType
    name: str
    description: str
    price_monthly: float
    price_yearly: float
    features: list[str]

    def price_for(self, interval: BillingInterval) -> float:
        if interval == BillingInterval.YEARLY:
            return self.price_yearly
        return self.price_monthly


SUBSCRIPTION_PLANS: dict[PlanType, SubscriptionPlan] = {
    PlanType.STANDARD: SubscriptionPlan(
        type=PlanType.STANDARD,
        name="Standard Plan",
        description="Perfect for personal use and small projects",
        price_monthly=9.99,
        price_yearly=99.99,
        features=[
            "Access to standard quality images",
            "Basic usage rights",
            "Download up to 50 images/month",
            "Email support",
        ],
    ),
    PlanType.PREMIUM: SubscriptionPlan(
        type=PlanType.PREMIUM,
        name="Premium Plan",
        description="Great for professionals and growing businesses",
        price_monthly=19.99,
        price_yearly=199.99,
        features=[
            "Access to premium quality images",
            "Extended usage rights",
            "Download up to 200 images/month",
            "Priority email support",
            "Advanced filters and search",
        ],
    ),
    PlanType.COMMERCIAL: SubscriptionPlan(
        type=PlanType.COMMERCIAL,
        name="Commercial Plan",
        description="Everything you need for large-scale commercial use",
        price_monthly=39.99,
        price_yearly=399.99,
        features=[
            "Access to all images",
            "Full commercial usage rights",
            "Unlimited downloads",
            "Priority phone support",
            "Early access to new features",
            "Custom licensing options",
        ],
    ),
}


def get_plan(plan_type: PlanType) -> SubscriptionPlan:
    """Get the catalog entry for a plan type."""
    return SUBSCRIPTION_PLANS[plan_type]


def parse_plan_type(value: Optional[str], default: PlanType = PlanType.STANDARD) -> PlanType:
    """Map a loose provider string onto a plan type, falling back to ``default``."""
    try:
        return PlanType((value or "").lower())
    except ValueError:
        return default


def parse_billing_interval(
    value: Optional[str],
    default: BillingInterval = BillingInterval.MONTHLY,
) -> BillingInterval:
    """Map a loose provider string onto a billing interval."""
    normalized = (value or "").lower()
    if normalized in ("year", "annual", "yearly"):
        return BillingInterval.YEARLY
    if normalized in ("month", "monthly"):
        return BillingInterval.MONTHLY
    return default


# =============================================================================
# Period Arithmetic
# =============================================================================

def add_months(start: datetime, months: int) -> datetime:
    """
    Add calendar months to a datetime.

    The day of month is clamped to the last day of the target month,
    so Jan 31 + 1 month is Feb 28 (or 29) and Feb 29 + 12 months is Feb 28.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def calculate_period_end(start: datetime, interval: BillingInterval) -> datetime:
    """End of the billing period that begins at ``start``."""
    if interval == BillingInterval.YEARLY:
        return add_months(start, 12)
    return add_months(start, 1)


# =============================================================================
# Domain Entities
# =============================================================================

class Subscription(BaseModel):
    """Canonical subscription row for a user."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    user_id: str
    plan_type: PlanType = PlanType.STANDARD
    billing_interval: BillingInterval = BillingInterval.MONTHLY
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    payment_provider: Optional[PaymentProvider] = None
    price_monthly: float = 0.0
    price_yearly: float = 0.0
    features: list[str] = Field(default_factory=list)
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    paypal_subscription_id: Optional[str] = None
    crypto_charge_id: Optional[str] = None
    cancel_at_period_end: bool = False
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def external_id(self) -> Optional[str]:
        """Provider-side id of whichever provider owns this row."""
        return (
            self.stripe_subscription_id
            or self.paypal_subscription_id
            or self.crypto_charge_id
        )


# Provider -> column holding its external subscription id
EXTERNAL_ID_COLUMNS: dict[PaymentProvider, str] = {
    PaymentProvider.STRIPE: "stripe_subscription_id",
    PaymentProvider.PAYPAL: "paypal_subscription_id",
    PaymentProvider.CRYPTO: "crypto_charge_id",
}


# =============================================================================
# Request/Response DTOs
# =============================================================================

class PlanResponse(BaseModel):
    """Public view of a catalog plan."""
    type: PlanType
    name: str
    description: str
    price_monthly: float
    price_yearly: float
    features: list[str]


class ActivateSubscriptionRequest(BaseModel):
    """Client-reported activation after a provider redirect."""
    subscription_id: str = Field(..., min_length=1, description="Provider subscription id")
    plan_type: PlanType
    billing_interval: BillingInterval = BillingInterval.MONTHLY
    user_id: Optional[str] = Field(
        default=None,
        description="Fallback user id when no session token is available",
    )


class StripeActivateRequest(BaseModel):
    """Client-reported Stripe checkout completion."""
    session_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None


class SyncSubscriptionRequest(BaseModel):
    """Client-reported subscription state for POST /subscriptions/sync."""
    subscription_id: str = Field(..., min_length=1)
    provider: PaymentProvider
    plan_type: PlanType
    billing_interval: BillingInterval = BillingInterval.MONTHLY
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE


class SubscriptionIdRequest(BaseModel):
    """Body carrying a Stripe subscription id (cancel / reactivate)."""
    subscription_id: str = Field(..., min_length=1)


class SubscriptionUpdateRequest(BaseModel):
    """Move a Stripe subscription to another plan through a new Checkout."""
    subscription_id: str = Field(..., min_length=1)
    plan_type: PlanType
    billing_interval: Optional[BillingInterval] = None


class SubscriptionCheckoutRequest(BaseModel):
    """Request to start a subscription checkout with any provider."""
    plan_type: PlanType
    billing_interval: BillingInterval = BillingInterval.MONTHLY
    user_id: Optional[str] = None
    user_email: Optional[str] = None


class SubscriptionSummary(BaseModel):
    """Response DTO for subscription status."""
    has_active_subscription: bool
    subscription: Optional[Subscription] = None
    subscription_tier: Optional[PlanType] = None
    expires_at: Optional[datetime] = None

