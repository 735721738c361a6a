"""
Purchase Domain Models

One-time image license purchases and their price configuration.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from app.domain.subscription import PaymentProvider


class LicenseType(str, Enum):
    """Image license tiers sold as one-time purchases."""
    STANDARD = "standard"
    PREMIUM = "premium"
    COMMERCIAL = "commercial"


class PaymentStatus(str, Enum):
    """Purchase payment status."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class LicensePrice(BaseModel):
    """Price configuration for a license type."""
    amount: int  # In cents
    currency: str
    name: str
    description: str

    @property
    def decimal_amount(self) -> str:
        """Amount formatted for APIs that take decimal strings (PayPal, Coinbase)."""
        return f"{self.amount / 100:.2f}"


IMAGE_LICENSES: dict[LicenseType, LicensePrice] = {
    LicenseType.STANDARD: LicensePrice(
        amount=500,
        currency="usd",
        name="Standard Image License",
        description="High-quality image download with standard usage rights",
    ),
    LicenseType.PREMIUM: LicensePrice(
        amount=1500,
        currency="usd",
        name="Premium Image License",
        description="High-quality image download with extended usage rights",
    ),
    LicenseType.COMMERCIAL: LicensePrice(
        amount=3000,
        currency="usd",
        name="Commercial Image License",
        description="High-quality image download with full commercial usage rights",
    ),
}


def parse_license_type(value: Optional[str]) -> LicenseType:
    """Map a loose metadata value onto a license type (standard by default)."""
    try:
        return LicenseType((value or "").lower())
    except ValueError:
        return LicenseType.STANDARD


# Provider -> purchase column that makes a purchase idempotent
PURCHASE_KEY_COLUMNS: dict[PaymentProvider, str] = {
    PaymentProvider.STRIPE: "stripe_session_id",
    PaymentProvider.PAYPAL: "paypal_order_id",
    PaymentProvider.CRYPTO: "crypto_charge_id",
}


class Purchase(BaseModel):
    """Completed one-time license purchase."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    image_id: str
    user_id: Optional[str] = None
    license_type: LicenseType = LicenseType.STANDARD
    amount_paid: int = 0
    currency: str = "usd"
    payment_method: PaymentProvider
    payment_status: PaymentStatus = PaymentStatus.COMPLETED
    stripe_session_id: Optional[str] = None
    paypal_order_id: Optional[str] = None
    paypal_payment_id: Optional[str] = None
    crypto_charge_id: Optional[str] = None
    purchased_at: Optional[datetime] = None


# =============================================================================
# Request/Response DTOs
# =============================================================================

class ImageCheckoutRequest(BaseModel):
    """One-time license checkout for a single image."""
    image_id: str = Field(..., min_length=1)
    license_type: LicenseType = LicenseType.STANDARD


class StripeCheckoutRequest(BaseModel):
    """Stripe checkout: either an image license or a subscription."""
    is_subscription: bool = False
    image_id: Optional[str] = None
    license_type: LicenseType = LicenseType.STANDARD
    plan_type: Optional[str] = None
    billing_interval: Optional[str] = None


class VerifySessionRequest(BaseModel):
    """Client-reported Stripe one-time checkout completion."""
    session_id: str = Field(..., min_length=1)


class CaptureOrderRequest(BaseModel):
    """PayPal order capture request."""
    order_id: str = Field(..., min_length=1)


class CheckoutResponse(BaseModel):
    """Redirect target returned by checkout endpoints."""
    url: Optional[str] = None
    id: Optional[str] = None
    provider: PaymentProvider


class PurchaseSummary(BaseModel):
    """Aggregate view of a user's completed purchases."""
    total_purchases: int = 0
    total_spent: int = 0
    unique_images: int = 0
    has_recent_purchases: bool = False


class PurchaseDetails(BaseModel):
    """Receipt view of a one-time purchase, joined with its image."""
    image_id: str
    image_name: str = "Unknown Image"
    image_url: str = ""
    license_type: LicenseType
    amount_paid: int
    currency: str
    payment_status: PaymentStatus
    session_id: Optional[str] = None
    purchased_at: Optional[datetime] = None
    size_bytes: Optional[int] = None
    mime_type: Optional[str] = None
