"""
Crypto (Coinbase Commerce) API Routes

Hosted charges for image licenses and single subscription periods.
Confirmation arrives only through /crypto/webhook.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from app.api.dependencies import (
    CoinbaseServiceDep,
    ImageRepoDep,
    OptionalUserId,
    resolve_user_id,
)
from app.domain.purchase import CheckoutResponse, ImageCheckoutRequest
from app.domain.subscription import PaymentProvider, SubscriptionCheckoutRequest


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/crypto")


@router.post("/checkout", response_model=CheckoutResponse)
async def create_image_charge(
    request: ImageCheckoutRequest,
    user_id: OptionalUserId,
    coinbase_service: CoinbaseServiceDep,
    images: ImageRepoDep,
):
    """Create a Coinbase charge for an image license."""
    image = await images.get(request.image_id)
    if not image:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")

    charge = await coinbase_service.create_image_charge(
        image.id,
        image.original_name,
        request.license_type,
        user_id,
    )
    return CheckoutResponse(
        url=charge.get("hosted_url"),
        id=charge.get("id"),
        provider=PaymentProvider.CRYPTO,
    )


@router.post("/subscription", response_model=CheckoutResponse)
async def create_subscription_charge(
    request: SubscriptionCheckoutRequest,
    user_id: OptionalUserId,
    coinbase_service: CoinbaseServiceDep,
):
    """Create a Coinbase charge covering one subscription period."""
    resolved = resolve_user_id(user_id, request.user_id)
    if not resolved:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Login required for subscriptions",
        )

    charge = await coinbase_service.create_subscription_charge(
        request.plan_type,
        request.billing_interval,
        resolved,
        request.user_email,
    )
    logger.info(f"[COINBASE] Subscription charge {charge.get('id')} created for user {resolved}")
    return CheckoutResponse(
        url=charge.get("hosted_url"),
        id=charge.get("id"),
        provider=PaymentProvider.CRYPTO,
    )
