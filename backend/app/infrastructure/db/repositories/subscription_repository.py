"""
Subscription Repository

Data access layer for the one-row-per-user subscriptions table.
Activation writes go through an insert ... on conflict (user_id) upsert so
a webhook and a client activation racing on the same user converge on one row.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import (
    EXTERNAL_ID_COLUMNS,
    BillingInterval,
    PaymentProvider,
    PlanType,
    Subscription,
    SubscriptionStatus,
)
from app.infrastructure.db.database import dialect_insert
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid


logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SubscriptionRepository(BaseRepository[SubscriptionModel]):
    """
    Repository for subscription data access.

    Returns Subscription domain entities; callers never see the table model.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionModel, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def _find_model(self, *criteria: Any, refresh: bool = False) -> Optional[SubscriptionModel]:
        statement = select(SubscriptionModel).where(*criteria)
        if refresh:
            # Core upserts bypass the identity map
            statement = statement.execution_options(populate_existing=True)
        result = await self.session.execute(statement)
        return result.scalar_one_or_none()

    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]:
        """
        Get subscription by user ID.

        Args:
            user_id: Supabase auth user id

        Returns:
            Subscription domain model or None
        """
        model = await self._find_model(SubscriptionModel.user_id == as_uuid(user_id))
        return self._to_domain(model) if model else None

    async def get_by_external_id(
        self,
        provider: PaymentProvider,
        external_id: str,
    ) -> Optional[Subscription]:
        """
        Get subscription by the provider-side id stored in the provider's column.

        Args:
            provider: Payment provider owning the id
            external_id: Stripe subscription id, PayPal subscription id or crypto charge id
        """
        column = getattr(SubscriptionModel, EXTERNAL_ID_COLUMNS[provider])
        model = await self._find_model(column == external_id)
        return self._to_domain(model) if model else None

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def upsert(self, subscription: Subscription) -> Subscription:
        """
        Create or update the user's subscription row.

        Every column is overwritten from ``subscription``, including the three
        provider id columns, so a row written for one provider drops the ids
        of the others.

        Args:
            subscription: Subscription domain model

        Returns:
            Created/updated subscription
        """
        now = utcnow()
        user_uuid = as_uuid(subscription.user_id)

        values = {
            "id": uuid4(),
            "user_id": user_uuid,
            "plan_type": subscription.plan_type.value,
            "billing_interval": subscription.billing_interval.value,
            "status": subscription.status.value,
            "price_monthly": subscription.price_monthly,
            "price_yearly": subscription.price_yearly,
            "features": list(subscription.features),
            "payment_provider": subscription.payment_provider.value if subscription.payment_provider else None,
            "stripe_customer_id": subscription.stripe_customer_id,
            "stripe_subscription_id": subscription.stripe_subscription_id,
            "paypal_subscription_id": subscription.paypal_subscription_id,
            "crypto_charge_id": subscription.crypto_charge_id,
            "cancel_at_period_end": subscription.cancel_at_period_end,
            "current_period_start": subscription.current_period_start,
            "current_period_end": subscription.current_period_end,
            "created_at": now,
            "updated_at": now,
        }

        stmt = dialect_insert(self.session, SubscriptionModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={
                column: stmt.excluded[column]
                for column in values
                if column not in ("id", "user_id", "created_at")
            },
        )

        await self.session.execute(stmt)

        model = await self._find_model(SubscriptionModel.user_id == user_uuid, refresh=True)
        logger.info(
            f"Upserted subscription for user {user_uuid} "
            f"({subscription.payment_provider.value if subscription.payment_provider else 'none'}, "
            f"{subscription.plan_type.value}/{subscription.billing_interval.value})"
        )
        return self._to_domain(model)

    async def update_fields(self, user_id: str, **changes: Any) -> Optional[Subscription]:
        """
        Update selected columns on the user's row.

        Enum values are stored by value. Returns None when the user has no row.
        """
        model = await self._find_model(SubscriptionModel.user_id == as_uuid(user_id))
        if not model:
            return None

        for field, value in changes.items():
            if hasattr(value, "value"):
                value = value.value
            setattr(model, field, value)
        model.updated_at = utcnow()

        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)

        logger.info(f"Updated subscription for user {user_id}: {', '.join(changes)}")
        return self._to_domain(model)

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, model: SubscriptionModel) -> Subscription:
        """Convert database model to domain entity."""
        return Subscription(
            id=str(model.id),
            user_id=str(model.user_id),
            plan_type=PlanType(model.plan_type),
            billing_interval=BillingInterval(model.billing_interval),
            status=SubscriptionStatus(model.status),
            payment_provider=PaymentProvider(model.payment_provider) if model.payment_provider else None,
            price_monthly=model.price_monthly or 0.0,
            price_yearly=model.price_yearly or 0.0,
            features=list(model.features or []),
            stripe_customer_id=model.stripe_customer_id,
            stripe_subscription_id=model.stripe_subscription_id,
            paypal_subscription_id=model.paypal_subscription_id,
            crypto_charge_id=model.crypto_charge_id,
            cancel_at_period_end=model.cancel_at_period_end or False,
            current_period_start=_aware(model.current_period_start),
            current_period_end=_aware(model.current_period_end),
            created_at=_aware(model.created_at),
            updated_at=_aware(model.updated_at),
        )
