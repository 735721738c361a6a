"""
PayPal API Routes

Orders for image licenses (create + capture) and billing subscriptions
(create + client-side activation after approval).
"""

import logging

from fastapi import APIRouter, HTTPException, status

from app.api.dependencies import (
    ImageRepoDep,
    OptionalUserId,
    PayPalServiceDep,
    ReconcilerDep,
    resolve_user_id,
)
from app.config.settings import get_settings
from app.domain.events import ReconcileOutcome, SubscriptionActivated
from app.domain.purchase import CaptureOrderRequest, CheckoutResponse, ImageCheckoutRequest
from app.domain.subscription import (
    ActivateSubscriptionRequest,
    PaymentProvider,
    SubscriptionCheckoutRequest,
)
from app.infrastructure.payments.event_mapping import paypal_capture_to_event


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/paypal")

SANDBOX_SUBSCRIPTION_PREFIX = "I-TEST"


# =============================================================================
# Image orders
# =============================================================================

@router.post("/checkout", response_model=CheckoutResponse)
async def create_order(
    request: ImageCheckoutRequest,
    paypal_service: PayPalServiceDep,
    images: ImageRepoDep,
):
    """Create a PayPal order for an image license and return its approval link."""
    image = await images.get(request.image_id)
    if not image:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")

    order = await paypal_service.create_order(image.id, request.license_type)
    approve_url = next(
        (link["href"] for link in order.get("links", []) if link.get("rel") == "approve"),
        None,
    )
    return CheckoutResponse(url=approve_url, id=order.get("id"), provider=PaymentProvider.PAYPAL)


@router.post("/capture")
async def capture_order(
    request: CaptureOrderRequest,
    user_id: OptionalUserId,
    paypal_service: PayPalServiceDep,
    reconciler: ReconcilerDep,
):
    """Capture an approved order and record the purchase."""
    capture = await paypal_service.capture_order(request.order_id)
    if capture.get("status") != "COMPLETED":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Order not completed: {capture.get('status')}",
        )

    event = paypal_capture_to_event(capture, user_id)
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Captured order does not reference an image",
        )

    result = await reconciler.reconcile(event)
    if result.outcome == ReconcileOutcome.DROPPED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.error)

    return {
        "success": True,
        "already_recorded": result.outcome == ReconcileOutcome.DUPLICATE,
        "purchase": result.purchase,
    }


# =============================================================================
# Subscriptions
# =============================================================================

@router.post("/subscription")
async def create_subscription(
    request: SubscriptionCheckoutRequest,
    user_id: OptionalUserId,
    paypal_service: PayPalServiceDep,
):
    """Create a PayPal subscription; the client redirects to approval_url."""
    resolved = resolve_user_id(user_id, request.user_id)
    if not resolved:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User ID is required")

    return await paypal_service.create_subscription(
        request.plan_type,
        request.billing_interval,
        resolved,
        request.user_email,
    )


@router.post("/activate-subscription")
async def activate_subscription(
    request: ActivateSubscriptionRequest,
    user_id: OptionalUserId,
    paypal_service: PayPalServiceDep,
    reconciler: ReconcilerDep,
):
    """
    Activate a subscription after the buyer approves it on PayPal.

    The subscription must be ACTIVE on PayPal. Outside production the remote
    check is skipped; sandbox ids (I-TEST...) are refused in production.
    """
    resolved = resolve_user_id(user_id, request.user_id)
    if not resolved:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User ID is required")

    is_production = get_settings().is_production
    if is_production and request.subscription_id.startswith(SANDBOX_SUBSCRIPTION_PREFIX):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Sandbox subscriptions are not accepted",
        )

    if not is_production:
        logger.warning(f"[PAYPAL] Skipping remote status check for {request.subscription_id}")
    else:
        remote = await paypal_service.get_subscription(request.subscription_id)
        if remote.get("status") != "ACTIVE":
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Subscription is not active: {remote.get('status')}",
            )

    result = await reconciler.reconcile(
        SubscriptionActivated(
            provider=PaymentProvider.PAYPAL,
            user_id=resolved,
            external_id=request.subscription_id,
            plan_type=request.plan_type,
            billing_interval=request.billing_interval,
        )
    )
    if result.outcome == ReconcileOutcome.DROPPED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.error)

    return {"success": True, "outcome": result.outcome.value, "subscription": result.subscription}
