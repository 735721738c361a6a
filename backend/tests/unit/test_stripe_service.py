"""
Unit tests for StripeService.

The Stripe SDK is patched at the module boundary; no network calls.
"""

from unittest.mock import MagicMock, patch

import pytest
import stripe

from app.domain.purchase import LicenseType
from app.domain.subscription import BillingInterval, PlanType
from app.infrastructure.exceptions import (
    ConfigurationError,
    PaymentProviderError,
    WebhookVerificationError,
)
from app.infrastructure.payments.stripe_service import StripeService


@pytest.fixture
def service() -> StripeService:
    return StripeService()


class TestPriceMap:

    def test_get_price_id(self, service):
        assert service.get_price_id(PlanType.PREMIUM, BillingInterval.YEARLY) == "price_premium_yearly"

    def test_reverse_lookup(self, service):
        assert service.plan_for_price_id("price_commercial_monthly") == (
            PlanType.COMMERCIAL,
            BillingInterval.MONTHLY,
        )
        assert service.plan_for_price_id("price_unknown") is None
        assert service.plan_for_price_id(None) is None

    def test_missing_price(self, service):
        service._price_map[(PlanType.STANDARD, BillingInterval.YEARLY)] = None

        with pytest.raises(ConfigurationError) as exc_info:
            service.get_price_id(PlanType.STANDARD, BillingInterval.YEARLY)

        assert exc_info.value.details["missing_keys"] == ["STRIPE_STANDARD_YEARLY_PRICE_ID"]


class TestCheckout:

    @pytest.mark.asyncio
    async def test_subscription_checkout_carries_metadata(self, service):
        with patch("stripe.checkout.Session.create", return_value=MagicMock(id="cs_1")) as create:
            await service.create_subscription_checkout(
                customer_id="cus_1",
                plan_type=PlanType.PREMIUM,
                interval=BillingInterval.MONTHLY,
                user_id="user-1",
            )

        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "subscription"
        assert kwargs["line_items"] == [{"price": "price_premium_monthly", "quantity": 1}]
        assert kwargs["metadata"]["userId"] == "user-1"
        assert kwargs["subscription_data"]["metadata"]["planType"] == "premium"

    @pytest.mark.asyncio
    async def test_image_checkout_price(self, service):
        with patch("stripe.checkout.Session.create", return_value=MagicMock(id="cs_2")) as create:
            await service.create_image_checkout(
                image_id="img-1",
                image_name="sunset.jpg",
                license_type=LicenseType.COMMERCIAL,
                user_id=None,
            )

        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 3000
        assert kwargs["metadata"] == {"imageId": "img-1", "licenseType": "commercial", "userId": "anonymous"}

    @pytest.mark.asyncio
    async def test_stripe_error_wrapped(self, service):
        error = stripe.InvalidRequestError("No such price", param="price", http_status=400)
        with patch("stripe.checkout.Session.create", side_effect=error):
            with pytest.raises(PaymentProviderError) as exc_info:
                await service.create_subscription_checkout("cus_1", PlanType.STANDARD, BillingInterval.MONTHLY, "u")

        assert exc_info.value.http_status == 400


class TestCustomers:

    @pytest.mark.asyncio
    async def test_existing_customer_reused(self, service):
        customer = {"id": "cus_1"}
        with patch("stripe.Customer.retrieve", return_value=customer), patch("stripe.Customer.create") as create:
            result = await service.get_or_create_customer("user-1", None, existing_customer_id="cus_1")

        assert result == customer
        create.assert_not_called()

    @pytest.mark.asyncio
    async def test_deleted_customer_replaced(self, service):
        with patch("stripe.Customer.retrieve", return_value={"id": "cus_1", "deleted": True}), patch(
            "stripe.Customer.create", return_value=MagicMock(id="cus_2")
        ) as create:
            result = await service.get_or_create_customer("user-1", "a@example.com", existing_customer_id="cus_1")

        assert result.id == "cus_2"
        create.assert_called_once_with(email="a@example.com", metadata={"userId": "user-1"})


class TestWebhookVerification:

    def test_missing_signature(self, service):
        with pytest.raises(WebhookVerificationError):
            service.verify_webhook_signature(b"{}", None)

    def test_invalid_signature(self, service):
        error = stripe.SignatureVerificationError("bad", sig_header="t=1,v1=x")
        with patch("stripe.Webhook.construct_event", side_effect=error):
            with pytest.raises(WebhookVerificationError, match="Invalid signature"):
                service.verify_webhook_signature(b"{}", "t=1,v1=x")

    def test_invalid_payload(self, service):
        with patch("stripe.Webhook.construct_event", side_effect=ValueError("not json")):
            with pytest.raises(WebhookVerificationError, match="Invalid payload"):
                service.verify_webhook_signature(b"{", "t=1,v1=x")

    def test_valid_event(self, service):
        event = {"id": "evt_1", "type": "checkout.session.completed"}
        with patch("stripe.Webhook.construct_event", return_value=event) as construct:
            assert service.verify_webhook_signature(b"{}", "t=1,v1=x") == event

        construct.assert_called_once_with(b"{}", "t=1,v1=x", "whsec_test_123")

    def test_missing_secret(self, service):
        service._webhook_secret = None
        with pytest.raises(ConfigurationError):
            service.verify_webhook_signature(b"{}", "t=1,v1=x")
