"""
Purchase Repository

Data access for one-time image license purchases. Each provider key column
is unique; a concurrent insert of the same key surfaces as IntegrityError
and is resolved by re-reading the winning row.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.purchase import (
    PURCHASE_KEY_COLUMNS,
    LicenseType,
    PaymentStatus,
    Purchase,
)
from app.domain.subscription import PaymentProvider
from app.infrastructure.db.models.purchase import PurchaseModel
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid


logger = logging.getLogger(__name__)


class PurchaseRepository(BaseRepository[PurchaseModel]):
    """Repository for purchases."""

    def __init__(self, session: AsyncSession):
        super().__init__(PurchaseModel, session)

    async def get_by_provider_key(
        self,
        provider: PaymentProvider,
        key: str,
    ) -> Optional[Purchase]:
        """
        Find a purchase by its provider idempotency key.

        Args:
            provider: Provider that completed the payment
            key: Stripe checkout session id, PayPal order id or crypto charge id
        """
        column = getattr(PurchaseModel, PURCHASE_KEY_COLUMNS[provider])
        result = await self.session.execute(select(PurchaseModel).where(column == key))
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def create(self, purchase: Purchase) -> tuple[Purchase, bool]:
        """
        Insert a purchase unless its provider key already exists.

        Returns:
            (purchase, created). ``created`` is False when another writer
            inserted the same provider key first.
        """
        key_column = PURCHASE_KEY_COLUMNS[purchase.payment_method]
        key = getattr(purchase, key_column)
        model = self._to_model(purchase)

        try:
            async with self.session.begin_nested():
                self.session.add(model)
        except IntegrityError:
            logger.info(
                f"Purchase {purchase.payment_method.value}:{key} already recorded by a concurrent request"
            )
            existing = await self.get_by_provider_key(purchase.payment_method, key)
            if existing is None:
                raise
            return existing, False

        await self.session.refresh(model)
        logger.info(
            f"Recorded {purchase.license_type.value} purchase of image {purchase.image_id} "
            f"via {purchase.payment_method.value} ({key})"
        )
        return self._to_domain(model), True

    async def list_for_user(self, user_id: str) -> list[Purchase]:
        """All completed purchases for a user, newest first."""
        statement = (
            select(PurchaseModel)
            .where(
                PurchaseModel.user_id == as_uuid(user_id),
                PurchaseModel.payment_status == PaymentStatus.COMPLETED.value,
            )
            .order_by(PurchaseModel.purchased_at.desc())
        )
        result = await self.session.execute(statement)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def has_purchased(self, user_id: str, image_id: str) -> bool:
        """Whether the user holds a completed purchase for the image."""
        statement = (
            select(PurchaseModel.id)
            .where(
                PurchaseModel.user_id == as_uuid(user_id),
                PurchaseModel.image_id == as_uuid(image_id),
                PurchaseModel.payment_status == PaymentStatus.COMPLETED.value,
            )
            .limit(1)
        )
        result = await self.session.execute(statement)
        return result.first() is not None

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, model: PurchaseModel) -> Purchase:
        purchased_at = model.purchased_at
        if purchased_at is not None and purchased_at.tzinfo is None:
            purchased_at = purchased_at.replace(tzinfo=timezone.utc)
        return Purchase(
            id=str(model.id),
            image_id=str(model.image_id),
            user_id=str(model.user_id) if model.user_id else None,
            license_type=LicenseType(model.license_type),
            amount_paid=model.amount_paid,
            currency=model.currency,
            payment_method=PaymentProvider(model.payment_method),
            payment_status=PaymentStatus(model.payment_status),
            stripe_session_id=model.stripe_session_id,
            paypal_order_id=model.paypal_order_id,
            paypal_payment_id=model.paypal_payment_id,
            crypto_charge_id=model.crypto_charge_id,
            purchased_at=purchased_at,
        )

    def _to_model(self, domain: Purchase) -> PurchaseModel:
        model = PurchaseModel(
            image_id=as_uuid(domain.image_id),
            user_id=as_uuid(domain.user_id) if domain.user_id else None,
            license_type=domain.license_type.value,
            amount_paid=domain.amount_paid,
            currency=domain.currency,
            payment_method=domain.payment_method.value,
            payment_status=domain.payment_status.value,
            stripe_session_id=domain.stripe_session_id,
            paypal_order_id=domain.paypal_order_id,
            paypal_payment_id=domain.paypal_payment_id,
            crypto_charge_id=domain.crypto_charge_id,
        )
        if domain.purchased_at is not None:
            model.purchased_at = domain.purchased_at
        return model
