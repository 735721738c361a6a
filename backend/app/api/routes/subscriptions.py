"""
Subscription API Routes

Provider-agnostic subscription state: read/sync the caller's row, local
cancellation, the plan catalog and the access summary used by the gallery.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, status

from app.api.dependencies import (
    CurrentUserId,
    OptionalUserId,
    PurchaseRepoDep,
    ReconcilerDep,
    SubscriptionRepoDep,
)
from app.domain.access import SubscriptionAccess, build_access, is_subscription_active
from app.domain.events import (
    ReconcileOutcome,
    SubscriptionActivated,
    SubscriptionStatusChanged,
)
from app.domain.subscription import (
    SUBSCRIPTION_PLANS,
    PaymentProvider,
    PlanResponse,
    SubscriptionStatus,
    SubscriptionSummary,
    SyncSubscriptionRequest,
)


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Status / sync
# =============================================================================

@router.get("/subscriptions/sync", response_model=SubscriptionSummary)
async def get_subscription(
    user_id: CurrentUserId,
    subscriptions: SubscriptionRepoDep,
):
    """Return the caller's subscription row and whether it is currently active."""
    subscription = await subscriptions.get_by_user_id(user_id)
    active = is_subscription_active(subscription, datetime.now(timezone.utc))
    return SubscriptionSummary(
        has_active_subscription=active,
        subscription=subscription,
        subscription_tier=subscription.plan_type if active else None,
        expires_at=subscription.current_period_end if subscription else None,
    )


@router.post("/subscriptions/sync")
async def sync_subscription(
    request: SyncSubscriptionRequest,
    user_id: CurrentUserId,
    reconciler: ReconcilerDep,
):
    """
    Push a client-observed provider state into the subscription row.

    An ``active`` status is treated as an activation; anything else is a
    status change on the existing row.
    """
    if request.status == SubscriptionStatus.ACTIVE:
        event = SubscriptionActivated(
            provider=request.provider,
            user_id=user_id,
            external_id=request.subscription_id,
            plan_type=request.plan_type,
            billing_interval=request.billing_interval,
        )
    else:
        event = SubscriptionStatusChanged(
            provider=request.provider,
            status=request.status,
            user_id=user_id,
            external_id=request.subscription_id,
        )

    result = await reconciler.reconcile(event)
    if result.outcome == ReconcileOutcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=result.error or "Failed to sync subscription",
        )

    return {"success": True, "outcome": result.outcome.value, "subscription": result.subscription}


@router.post("/subscriptions/cancel")
async def cancel_subscription(
    user_id: CurrentUserId,
    subscriptions: SubscriptionRepoDep,
    reconciler: ReconcilerDep,
):
    """
    Cancel the caller's subscription locally, effective immediately.

    Provider-side cancellation is separate (Stripe: /stripe/subscription/cancel,
    PayPal/Coinbase: handled on the provider's side).
    """
    subscription = await subscriptions.get_by_user_id(user_id)
    if not subscription:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")

    result = await reconciler.reconcile(
        SubscriptionStatusChanged(
            # rows written by the reconciler always carry a provider
            provider=subscription.payment_provider or PaymentProvider.STRIPE,
            status=SubscriptionStatus.CANCELLED,
            user_id=user_id,
        )
    )
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=result.error or "Failed to cancel subscription",
        )

    logger.info(f"User {user_id} cancelled their subscription locally")
    return {"success": True, "subscription": result.subscription}


# =============================================================================
# Catalog / access
# =============================================================================

@router.get("/subscriptions/plans", response_model=list[PlanResponse])
async def list_plans():
    """List the subscription catalog."""
    return [PlanResponse(**plan.model_dump()) for plan in SUBSCRIPTION_PLANS.values()]


@router.get("/subscription/access", response_model=SubscriptionAccess)
async def get_access(
    user_id: OptionalUserId,
    subscriptions: SubscriptionRepoDep,
    purchases: PurchaseRepoDep,
):
    """Access summary for the gallery; anonymous users get the empty summary."""
    if not user_id:
        return SubscriptionAccess(can_view_gallery=False)

    subscription = await subscriptions.get_by_user_id(user_id)
    user_purchases = await purchases.list_for_user(user_id)
    return build_access(subscription, user_purchases)
