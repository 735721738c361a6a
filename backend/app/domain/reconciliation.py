"""
Payment Reconciliation Service

Applies PaymentEvent variants from any provider to the subscriptions and
purchases tables. Webhooks and client activation callbacks both land here,
so whichever arrives second converges on the row the first one wrote.

reconcile() never raises: database failures come back as an unsuccessful
ReconcileResult for the caller to report.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.domain.events import (
    PaymentEvent,
    PurchaseCompleted,
    ReconcileOutcome,
    ReconcileResult,
    SubscriptionActivated,
    SubscriptionStatusChanged,
    normalize_uuid,
)
from app.domain.purchase import PURCHASE_KEY_COLUMNS, PaymentStatus, Purchase
from app.domain.subscription import (
    EXTERNAL_ID_COLUMNS,
    Subscription,
    SubscriptionStatus,
    calculate_period_end,
    get_plan,
)
from app.infrastructure.db.repositories.purchase_repository import PurchaseRepository
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentReconciler:
    """
    Single entry point that turns payment events into row changes.

    Args:
        subscriptions: Subscription repository bound to the request session
        purchases: Purchase repository bound to the same session
        clock: Source of "now", injectable for tests
    """

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        purchases: PurchaseRepository,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.subscriptions = subscriptions
        self.purchases = purchases
        self.clock = clock

    async def reconcile(self, event: PaymentEvent) -> ReconcileResult:
        """
        Apply one payment event.

        Args:
            event: Any PaymentEvent variant

        Returns:
            ReconcileResult describing what happened
        """
        try:
            if isinstance(event, SubscriptionActivated):
                return await self._activate(event)
            if isinstance(event, SubscriptionStatusChanged):
                return await self._change_status(event)
            if isinstance(event, PurchaseCompleted):
                return await self._record_purchase(event)
        except SQLAlchemyError as e:
            logger.error(f"Database error reconciling {event.kind} from {event.provider.value}: {e}")
            await self.subscriptions.session.rollback()
            return ReconcileResult.failed(f"Database error: {e}")

        return ReconcileResult.failed(f"Unsupported payment event: {type(event).__name__}")

    # =========================================================================
    # Subscription activation
    # =========================================================================

    async def _activate(self, event: SubscriptionActivated) -> ReconcileResult:
        user_id = normalize_uuid(event.user_id)
        if not user_id:
            logger.warning(
                f"Dropping {event.provider.value} activation {event.external_id}: "
                f"no valid user id (got {event.user_id!r})"
            )
            return ReconcileResult.dropped("Missing user id")

        existing = await self.subscriptions.get_by_user_id(user_id)

        plan = get_plan(event.plan_type)
        period_start = event.period_start or self.clock()
        if period_start.tzinfo is None:
            period_start = period_start.replace(tzinfo=timezone.utc)

        subscription = Subscription(
            user_id=user_id,
            plan_type=event.plan_type,
            billing_interval=event.billing_interval,
            status=SubscriptionStatus.ACTIVE,
            payment_provider=event.provider,
            price_monthly=plan.price_monthly,
            price_yearly=plan.price_yearly,
            features=list(plan.features),
            stripe_customer_id=event.customer_id,
            cancel_at_period_end=False,
            current_period_start=period_start,
            current_period_end=calculate_period_end(period_start, event.billing_interval),
        )
        setattr(subscription, EXTERNAL_ID_COLUMNS[event.provider], event.external_id)

        saved = await self.subscriptions.upsert(subscription)
        outcome = ReconcileOutcome.UPDATED if existing else ReconcileOutcome.CREATED
        logger.info(
            f"Subscription {outcome.value} for user {user_id}: "
            f"{event.provider.value} {event.external_id} "
            f"({event.plan_type.value}/{event.billing_interval.value})"
        )
        return ReconcileResult(success=True, outcome=outcome, subscription=saved)

    # =========================================================================
    # Status changes
    # =========================================================================

    async def _change_status(self, event: SubscriptionStatusChanged) -> ReconcileResult:
        current = await self._locate(event)
        if current is None:
            logger.warning(
                f"No subscription found for {event.provider.value} status change "
                f"(user={event.user_id}, external_id={event.external_id})"
            )
            return ReconcileResult(
                success=False,
                outcome=ReconcileOutcome.NOT_FOUND,
                error="Subscription not found",
            )

        changes: dict = {"status": event.status}
        if event.cancel_at_period_end is not None:
            changes["cancel_at_period_end"] = event.cancel_at_period_end
        if event.status == SubscriptionStatus.CANCELLED:
            changes["current_period_end"] = self.clock()

        updated = await self.subscriptions.update_fields(current.user_id, **changes)
        logger.info(
            f"Subscription for user {current.user_id} is now {event.status.value} "
            f"({event.provider.value})"
        )
        return ReconcileResult(success=True, outcome=ReconcileOutcome.UPDATED, subscription=updated)

    async def _locate(self, event: SubscriptionStatusChanged) -> Optional[Subscription]:
        user_id = normalize_uuid(event.user_id)
        if user_id:
            found = await self.subscriptions.get_by_user_id(user_id)
            if found:
                return found
        if event.external_id:
            return await self.subscriptions.get_by_external_id(event.provider, event.external_id)
        return None

    # =========================================================================
    # One-time purchases
    # =========================================================================

    async def _record_purchase(self, event: PurchaseCompleted) -> ReconcileResult:
        image_id = normalize_uuid(event.image_id)
        if not image_id:
            logger.warning(
                f"Dropping {event.provider.value} purchase {event.external_id}: "
                f"invalid image id {event.image_id!r}"
            )
            return ReconcileResult.dropped("Missing image id")

        existing = await self.purchases.get_by_provider_key(event.provider, event.external_id)
        if existing:
            logger.info(f"Purchase {event.provider.value}:{event.external_id} already recorded")
            return ReconcileResult(success=True, outcome=ReconcileOutcome.DUPLICATE, purchase=existing)

        purchase = Purchase(
            image_id=image_id,
            user_id=normalize_uuid(event.user_id),
            license_type=event.license_type,
            amount_paid=event.amount,
            currency=event.currency.lower(),
            payment_method=event.provider,
            payment_status=PaymentStatus.COMPLETED,
            paypal_payment_id=event.payment_id,
            purchased_at=self.clock(),
        )
        setattr(purchase, PURCHASE_KEY_COLUMNS[event.provider], event.external_id)

        saved, created = await self.purchases.create(purchase)
        outcome = ReconcileOutcome.CREATED if created else ReconcileOutcome.DUPLICATE
        return ReconcileResult(success=True, outcome=outcome, purchase=saved)
