"""
Stripe Payment Service

Infrastructure service for Stripe payment processing.
Handles checkout sessions (image licenses and subscriptions), customer
management, subscription changes, billing portal and webhook verification.
"""

import logging
from typing import Optional
import stripe
from stripe import StripeError

from app.config.settings import get_settings
from app.domain.purchase import IMAGE_LICENSES, LicenseType
from app.domain.subscription import BillingInterval, PlanType
from app.infrastructure.exceptions import (
    ConfigurationError,
    PaymentProviderError,
    WebhookVerificationError,
)


logger = logging.getLogger(__name__)


def _provider_error(action: str, error: StripeError) -> PaymentProviderError:
    message = getattr(error, "user_message", None) or str(error)
    return PaymentProviderError(
        f"Failed to {action}: {message}",
        provider="stripe",
        status_code=getattr(error, "http_status", None),
        original_error=error,
    )


class StripeService:
    """Stripe payment processing service."""

    def __init__(self):
        """Initialize Stripe with API key from settings."""
        settings = get_settings()
        self._api_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret
        self._app_url = settings.app_url.rstrip("/")

        if self._api_key:
            stripe.api_key = self._api_key

        # Price ID mapping: (plan, interval) -> stripe_price_id
        self._price_map = {
            (PlanType.STANDARD, BillingInterval.MONTHLY): settings.stripe_standard_monthly_price_id,
            (PlanType.STANDARD, BillingInterval.YEARLY): settings.stripe_standard_yearly_price_id,
            (PlanType.PREMIUM, BillingInterval.MONTHLY): settings.stripe_premium_monthly_price_id,
            (PlanType.PREMIUM, BillingInterval.YEARLY): settings.stripe_premium_yearly_price_id,
            (PlanType.COMMERCIAL, BillingInterval.MONTHLY): settings.stripe_commercial_monthly_price_id,
            (PlanType.COMMERCIAL, BillingInterval.YEARLY): settings.stripe_commercial_yearly_price_id,
        }

    def _require_api_key(self) -> None:
        if not self._api_key:
            raise ConfigurationError("Stripe is not configured", missing_keys=["STRIPE_SECRET_KEY"])

    def get_price_id(self, plan_type: PlanType, interval: BillingInterval) -> str:
        """Get Stripe Price ID for a plan/interval combination."""
        price_id = self._price_map.get((plan_type, interval))

        if not price_id:
            raise ConfigurationError(
                f"No Stripe price configured for {plan_type.value}/{interval.value}",
                missing_keys=[f"STRIPE_{plan_type.value.upper()}_{interval.value.upper()}_PRICE_ID"],
            )

        return price_id

    def plan_for_price_id(self, price_id: Optional[str]) -> Optional[tuple[PlanType, BillingInterval]]:
        """Reverse lookup of the configured price map."""
        if not price_id:
            return None
        for key, configured in self._price_map.items():
            if configured == price_id:
                return key
        return None

    # =========================================================================
    # Customer Management
    # =========================================================================

    async def create_customer(self, user_id: str, email: Optional[str]) -> stripe.Customer:
        """
        Create a new Stripe customer.

        Args:
            user_id: Supabase user ID (stored in metadata)
            email: Customer email for receipts
        """
        self._require_api_key()
        try:
            customer = stripe.Customer.create(
                email=email,
                metadata={"userId": user_id},
            )
            logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
            return customer

        except StripeError as e:
            logger.error(f"Failed to create Stripe customer: {e}")
            raise _provider_error("create customer", e)

    async def get_or_create_customer(
        self,
        user_id: str,
        email: Optional[str],
        existing_customer_id: Optional[str] = None,
    ) -> stripe.Customer:
        """
        Get existing customer or create new one.

        Args:
            user_id: Supabase user ID
            email: Customer email
            existing_customer_id: Customer ID from the user's subscription row
        """
        self._require_api_key()
        if existing_customer_id:
            try:
                customer = stripe.Customer.retrieve(existing_customer_id)
                if not customer.get("deleted"):
                    return customer
            except StripeError:
                logger.warning(f"Customer {existing_customer_id} not found, creating new")

        return await self.create_customer(user_id, email)

    # =========================================================================
    # Checkout Sessions
    # =========================================================================

    async def create_subscription_checkout(
        self,
        customer_id: str,
        plan_type: PlanType,
        interval: BillingInterval,
        user_id: str,
    ) -> stripe.checkout.Session:
        """
        Create a hosted Checkout Session for a subscription.

        The user id, plan and interval ride along in metadata so the webhook
        and the activate fallback can rebuild the activation.
        """
        self._require_api_key()
        price_id = self.get_price_id(plan_type, interval)

        metadata = {
            "userId": user_id,
            "planType": plan_type.value,
            "billingInterval": interval.value,
            "isSubscription": "true",
        }
        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=f"{self._app_url}/membership/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self._app_url}/membership",
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )

            logger.info(
                f"Created subscription checkout {session.id} for user {user_id}, "
                f"plan={plan_type.value}, interval={interval.value}"
            )
            return session

        except StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise _provider_error("create checkout", e)

    async def create_image_checkout(
        self,
        image_id: str,
        image_name: str,
        license_type: LicenseType,
        user_id: Optional[str],
    ) -> stripe.checkout.Session:
        """Create a one-time payment Checkout Session for an image license."""
        self._require_api_key()
        price = IMAGE_LICENSES[license_type]

        try:
            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": price.currency,
                            "product_data": {
                                "name": f"{price.name}: {image_name}",
                                "description": price.description,
                            },
                            "unit_amount": price.amount,
                        },
                        "quantity": 1,
                    }
                ],
                mode="payment",
                success_url=f"{self._app_url}/gallery/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self._app_url}/gallery/{image_id}",
                metadata={
                    "imageId": image_id,
                    "licenseType": license_type.value,
                    "userId": user_id or "anonymous",
                },
            )

            logger.info(f"Created image checkout {session.id} for image {image_id} ({license_type.value})")
            return session

        except StripeError as e:
            logger.error(f"Failed to create image checkout session: {e}")
            raise _provider_error("create checkout", e)

    async def retrieve_checkout_session(self, session_id: str) -> stripe.checkout.Session:
        """Retrieve a Checkout Session with its subscription expanded."""
        self._require_api_key()
        try:
            return stripe.checkout.Session.retrieve(session_id, expand=["subscription"])
        except StripeError as e:
            logger.error(f"Failed to retrieve checkout session {session_id}: {e}")
            raise _provider_error("retrieve checkout session", e)

    # =========================================================================
    # Customer Portal
    # =========================================================================

    async def create_portal_session(
        self,
        customer_id: str,
        return_url: Optional[str] = None,
    ) -> stripe.billing_portal.Session:
        """
        Create a Billing Portal session for self-service management.

        Args:
            customer_id: Stripe customer ID
            return_url: URL to return to after portal session
        """
        self._require_api_key()
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url or f"{self._app_url}/account",
            )

            logger.info(f"Created portal session for customer {customer_id}")
            return session

        except StripeError as e:
            logger.error(f"Failed to create portal session: {e}")
            raise _provider_error("create portal", e)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def get_subscription(self, subscription_id: str) -> Optional[stripe.Subscription]:
        """
        Retrieve a subscription by ID.

        Returns:
            stripe.Subscription or None if not found
        """
        self._require_api_key()
        try:
            return stripe.Subscription.retrieve(subscription_id)
        except StripeError as e:
            logger.warning(f"Failed to retrieve subscription {subscription_id}: {e}")
            return None

    async def set_cancel_at_period_end(
        self,
        subscription_id: str,
        cancel_at_period_end: bool,
    ) -> stripe.Subscription:
        """
        Schedule (or unschedule) cancellation at the end of the billing period.

        Args:
            subscription_id: Stripe subscription ID
            cancel_at_period_end: True to cancel, False to reactivate
        """
        self._require_api_key()
        try:
            subscription = stripe.Subscription.modify(
                subscription_id,
                cancel_at_period_end=cancel_at_period_end,
            )
            logger.info(
                f"Subscription {subscription_id} cancel_at_period_end={cancel_at_period_end}"
            )
            return subscription

        except StripeError as e:
            logger.error(f"Failed to update subscription {subscription_id}: {e}")
            action = "cancel subscription" if cancel_at_period_end else "reactivate subscription"
            raise _provider_error(action, e)

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> stripe.Event:
        """
        Verify webhook signature and construct event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Raises:
            WebhookVerificationError if the header is missing or invalid
        """
        if not signature:
            raise WebhookVerificationError("Missing stripe signature", provider="stripe")
        if not self._webhook_secret:
            raise ConfigurationError(
                "Stripe webhook secret is not configured",
                missing_keys=["STRIPE_WEBHOOK_SECRET"],
            )

        try:
            return stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except ValueError as e:
            raise WebhookVerificationError(f"Invalid payload: {e}", provider="stripe", original_error=e)
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(f"Invalid signature: {e}", provider="stripe", original_error=e)


# =============================================================================
# Singleton Instance (Dependency Injection Ready)
# =============================================================================

_stripe_service_instance: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """Get or create Stripe service singleton."""
    global _stripe_service_instance

    if _stripe_service_instance is None:
        _stripe_service_instance = StripeService()

    return _stripe_service_instance
