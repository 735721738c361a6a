"""
Stripe API Routes

Checkout (image licenses and subscriptions), client-side activation and
purchase verification after the Checkout redirect, cancel/reactivate at
period end, plan changes and the billing portal.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from app.api.dependencies import (
    CurrentUserId,
    ImageRepoDep,
    OptionalUserEmail,
    OptionalUserId,
    ReconcilerDep,
    StripeServiceDep,
    SubscriptionRepoDep,
    resolve_user_id,
)
from app.domain.events import PurchaseCompleted, ReconcileOutcome, ReconcileResult, SubscriptionActivated
from app.domain.purchase import CheckoutResponse, StripeCheckoutRequest, VerifySessionRequest
from app.domain.subscription import (
    PaymentProvider,
    PlanType,
    StripeActivateRequest,
    SubscriptionIdRequest,
    SubscriptionUpdateRequest,
    parse_billing_interval,
)
from app.infrastructure.payments.event_mapping import stripe_session_to_event


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stripe")


def _raise_for_result(result: ReconcileResult) -> None:
    """Turn an unsuccessful reconcile into the HTTP error the client sees."""
    if result.outcome == ReconcileOutcome.DROPPED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=result.error or "Failed to record payment",
        )


# =============================================================================
# Checkout
# =============================================================================

@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    request: StripeCheckoutRequest,
    user_id: OptionalUserId,
    email: OptionalUserEmail,
    stripe_service: StripeServiceDep,
    images: ImageRepoDep,
    subscriptions: SubscriptionRepoDep,
):
    """
    Create a Stripe Checkout session.

    Subscriptions require a signed-in user; image licenses may be bought
    anonymously.
    """
    if request.is_subscription:
        try:
            plan_type = PlanType((request.plan_type or "").lower())
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid subscription type",
            )
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Login required for subscriptions",
            )

        interval = parse_billing_interval(request.billing_interval)
        existing = await subscriptions.get_by_user_id(user_id)
        customer = await stripe_service.get_or_create_customer(
            user_id,
            email=email,
            existing_customer_id=existing.stripe_customer_id if existing else None,
        )
        session = await stripe_service.create_subscription_checkout(
            customer_id=customer.id,
            plan_type=plan_type,
            interval=interval,
            user_id=user_id,
        )
        return CheckoutResponse(url=session.url, id=session.id, provider=PaymentProvider.STRIPE)

    if not request.image_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Image ID is required")

    image = await images.get(request.image_id)
    if not image:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")

    session = await stripe_service.create_image_checkout(
        image_id=image.id,
        image_name=image.original_name,
        license_type=request.license_type,
        user_id=user_id,
    )
    return CheckoutResponse(url=session.url, id=session.id, provider=PaymentProvider.STRIPE)


# =============================================================================
# Post-redirect activation / verification
# =============================================================================

@router.post("/activate-subscription")
async def activate_subscription(
    request: StripeActivateRequest,
    user_id: OptionalUserId,
    stripe_service: StripeServiceDep,
    reconciler: ReconcilerDep,
):
    """
    Activate a subscription from a completed Checkout session.

    Fallback for when the webhook cannot reach the server; converges on the
    same row the webhook would write.
    """
    session = await stripe_service.retrieve_checkout_session(request.session_id)
    if session.get("payment_status") not in ("paid", "no_payment_required") and session.get("status") != "complete":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Checkout session is not completed",
        )

    event = stripe_session_to_event(
        session,
        stripe_service.plan_for_price_id,
        user_id=resolve_user_id(None, request.user_id),
    )
    if not isinstance(event, SubscriptionActivated):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session is not a subscription checkout",
        )
    if user_id:
        event = event.model_copy(update={"user_id": user_id})

    result = await reconciler.reconcile(event)
    _raise_for_result(result)
    return {"success": True, "outcome": result.outcome.value, "subscription": result.subscription}


@router.post("/verify-session")
async def verify_session(
    request: VerifySessionRequest,
    user_id: OptionalUserId,
    stripe_service: StripeServiceDep,
    reconciler: ReconcilerDep,
):
    """Record a one-time image purchase from a paid Checkout session."""
    session = await stripe_service.retrieve_checkout_session(request.session_id)
    if session.get("payment_status") != "paid":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment not completed")

    event = stripe_session_to_event(session, user_id=user_id)
    if not isinstance(event, PurchaseCompleted):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session is not an image purchase",
        )

    result = await reconciler.reconcile(event)
    _raise_for_result(result)
    return {
        "success": True,
        "already_recorded": result.outcome == ReconcileOutcome.DUPLICATE,
        "purchase": result.purchase,
    }


# =============================================================================
# Subscription management
# =============================================================================

async def _owned_stripe_subscription(subscriptions: SubscriptionRepoDep, subscription_id: str, user_id: str):
    subscription = await subscriptions.get_by_external_id(PaymentProvider.STRIPE, subscription_id)
    if not subscription or subscription.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return subscription


@router.post("/subscription/cancel")
async def cancel_subscription(
    request: SubscriptionIdRequest,
    user_id: CurrentUserId,
    stripe_service: StripeServiceDep,
    subscriptions: SubscriptionRepoDep,
):
    """Cancel at the end of the current billing period."""
    await _owned_stripe_subscription(subscriptions, request.subscription_id, user_id)
    await stripe_service.set_cancel_at_period_end(request.subscription_id, True)
    updated = await subscriptions.update_fields(user_id, cancel_at_period_end=True)
    return {"success": True, "subscription": updated}


@router.post("/subscription/reactivate")
async def reactivate_subscription(
    request: SubscriptionIdRequest,
    user_id: CurrentUserId,
    stripe_service: StripeServiceDep,
    subscriptions: SubscriptionRepoDep,
):
    """Undo a scheduled cancellation."""
    await _owned_stripe_subscription(subscriptions, request.subscription_id, user_id)
    await stripe_service.set_cancel_at_period_end(request.subscription_id, False)
    updated = await subscriptions.update_fields(user_id, cancel_at_period_end=False)
    return {"success": True, "subscription": updated}


@router.post("/subscription/update")
async def update_subscription(
    request: SubscriptionUpdateRequest,
    user_id: CurrentUserId,
    stripe_service: StripeServiceDep,
    subscriptions: SubscriptionRepoDep,
):
    """
    Switch plans through a new Checkout for the same customer.

    The webhook for the new session overwrites the user's row, so the old
    plan stays in force until payment completes.
    """
    subscription = await _owned_stripe_subscription(subscriptions, request.subscription_id, user_id)
    if not subscription.stripe_customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No Stripe customer found")

    session = await stripe_service.create_subscription_checkout(
        customer_id=subscription.stripe_customer_id,
        plan_type=request.plan_type,
        interval=request.billing_interval or subscription.billing_interval,
        user_id=user_id,
    )
    logger.info(f"User {user_id} switching to {request.plan_type.value} via {session.id}")
    return {"success": True, "url": session.url, "id": session.id}


@router.post("/customer-portal")
async def customer_portal(
    user_id: CurrentUserId,
    stripe_service: StripeServiceDep,
    subscriptions: SubscriptionRepoDep,
):
    """Open the Stripe billing portal for the signed-in user."""
    subscription = await subscriptions.get_by_user_id(user_id)
    if not subscription or not subscription.stripe_customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No Stripe customer found")

    portal = await stripe_service.create_portal_session(subscription.stripe_customer_id)
    return {"url": portal.url}
