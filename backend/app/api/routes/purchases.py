"""
Purchase API Routes

Receipt lookup for the page the Stripe Checkout redirect lands on.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from app.api.dependencies import (
    ImageRepoDep,
    OptionalUserId,
    PurchaseRepoDep,
    ReconcilerDep,
    StripeServiceDep,
)
from app.domain.events import PurchaseCompleted
from app.domain.purchase import Purchase, PurchaseDetails
from app.domain.reconciliation import PaymentReconciler
from app.domain.subscription import PaymentProvider
from app.infrastructure.payments import StripeService
from app.infrastructure.payments.event_mapping import stripe_session_to_event


logger = logging.getLogger(__name__)

router = APIRouter()


async def _backfill_from_session(
    session_id: str,
    stripe_service: StripeService,
    reconciler: PaymentReconciler,
) -> Purchase:
    """Record a paid session whose webhook has not arrived yet."""
    session = await stripe_service.retrieve_checkout_session(session_id)
    if session.get("payment_status") != "paid":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Purchase details not found")

    event = stripe_session_to_event(session)
    if not isinstance(event, PurchaseCompleted):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Purchase details not found")

    result = await reconciler.reconcile(event)
    if not result.success or result.purchase is None:
        logger.error(f"Could not backfill purchase for session {session_id}: {result.error}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create purchase record",
        )

    logger.info(f"Backfilled purchase for Stripe session {session_id} ({result.outcome.value})")
    return result.purchase


@router.get("/purchase/details", response_model=PurchaseDetails)
async def get_purchase_details(
    session_id: Annotated[str, Query(min_length=1)],
    user_id: OptionalUserId,
    stripe_service: StripeServiceDep,
    reconciler: ReconcilerDep,
    purchases: PurchaseRepoDep,
    images: ImageRepoDep,
):
    """
    Purchase receipt for a Stripe Checkout session id.

    A paid session with no purchase row yet is recorded on the spot, the
    same way the webhook would record it.
    """
    purchase = await purchases.get_by_provider_key(PaymentProvider.STRIPE, session_id)
    if purchase is None:
        purchase = await _backfill_from_session(session_id, stripe_service, reconciler)

    if purchase.user_id and user_id and purchase.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Purchase details not found")

    image = await images.get(purchase.image_id)
    details = PurchaseDetails(
        image_id=purchase.image_id,
        license_type=purchase.license_type,
        amount_paid=purchase.amount_paid,
        currency=purchase.currency,
        payment_status=purchase.payment_status,
        session_id=purchase.stripe_session_id,
        purchased_at=purchase.purchased_at,
    )
    if image:
        details.image_name = image.original_name
        details.image_url = image.storage_url
        details.size_bytes = image.size_bytes
        details.mime_type = image.mime_type
    return details
