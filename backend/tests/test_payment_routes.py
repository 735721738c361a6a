"""
Integration Tests for Checkout and Activation Routes

Verifies:
- Checkout creation for each provider
- Client-side activation fallbacks feed the reconciler
- Ownership checks on subscription management
- Purchase receipts after the Checkout redirect
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.domain.events import (
    PurchaseCompleted,
    ReconcileOutcome,
    ReconcileResult,
    SubscriptionActivated,
    SubscriptionStatusChanged,
)
from app.domain.purchase import LicenseType, Purchase
from app.domain.subscription import (
    BillingInterval,
    PaymentProvider,
    PlanType,
    Subscription,
    SubscriptionStatus,
)
from app.infrastructure.payments import get_coinbase_service, get_paypal_service, get_stripe_service


FALLBACK_USER_ID = "9d8c7b6a-5f4e-4d3c-8b2a-1f0e9d8c7b6a"


@pytest.fixture
def stripe_service(app, override_repositories):
    mock_service = MagicMock()
    mock_service.plan_for_price_id.return_value = None
    mock_service.get_or_create_customer = AsyncMock(return_value=MagicMock(id="cus_123"))
    mock_service.create_subscription_checkout = AsyncMock(
        return_value=MagicMock(id="cs_sub", url="https://checkout.stripe.com/c/cs_sub")
    )
    mock_service.create_image_checkout = AsyncMock(
        return_value=MagicMock(id="cs_img", url="https://checkout.stripe.com/c/cs_img")
    )
    mock_service.retrieve_checkout_session = AsyncMock()
    mock_service.set_cancel_at_period_end = AsyncMock()
    mock_service.create_portal_session = AsyncMock(
        return_value=MagicMock(url="https://billing.stripe.com/p/session")
    )
    app.dependency_overrides[get_stripe_service] = lambda: mock_service
    return mock_service


@pytest.fixture
def paypal_service(app, override_repositories):
    mock_service = MagicMock()
    mock_service.create_order = AsyncMock(
        return_value={
            "id": "ORDER-1",
            "links": [
                {"rel": "self", "href": "https://api-m.sandbox.paypal.com/v2/checkout/orders/ORDER-1"},
                {"rel": "approve", "href": "https://www.sandbox.paypal.com/checkoutnow?token=ORDER-1"},
            ],
        }
    )
    mock_service.capture_order = AsyncMock()
    mock_service.create_subscription = AsyncMock(
        return_value={"subscription_id": "I-SUB1", "approval_url": "https://paypal/approve", "plan_id": "P-1"}
    )
    mock_service.get_subscription = AsyncMock(return_value={"id": "I-SUB1", "status": "ACTIVE"})
    app.dependency_overrides[get_paypal_service] = lambda: mock_service
    return mock_service


@pytest.fixture
def coinbase_service(app, override_repositories):
    mock_service = MagicMock()
    mock_service.create_image_charge = AsyncMock(
        return_value={"id": "charge-1", "hosted_url": "https://commerce.coinbase.com/charges/ABC"}
    )
    mock_service.create_subscription_charge = AsyncMock(
        return_value={"id": "charge-2", "hosted_url": "https://commerce.coinbase.com/charges/DEF"}
    )
    app.dependency_overrides[get_coinbase_service] = lambda: mock_service
    return mock_service


def _active_subscription(user_id: str, **overrides) -> Subscription:
    now = datetime.now(timezone.utc)
    values = dict(
        user_id=user_id,
        plan_type=PlanType.STANDARD,
        status=SubscriptionStatus.ACTIVE,
        payment_provider=PaymentProvider.STRIPE,
        stripe_customer_id="cus_123",
        stripe_subscription_id="sub_123",
        current_period_start=now,
        current_period_end=now + timedelta(days=30),
    )
    values.update(overrides)
    return Subscription(**values)


# =============================================================================
# Stripe
# =============================================================================

class TestStripeCheckout:

    def test_subscription_requires_login(self, client, stripe_service):
        response = client.post(
            "/api/stripe/checkout",
            json={"is_subscription": True, "plan_type": "premium", "billing_interval": "monthly"},
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Login required for subscriptions"

    def test_subscription_rejects_unknown_plan(self, client, stripe_service, auth_headers):
        response = client.post(
            "/api/stripe/checkout",
            json={"is_subscription": True, "plan_type": "gold"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_subscription_checkout_reuses_customer(
        self, client, stripe_service, auth_headers, mock_user_id, mock_subscription_repo
    ):
        mock_subscription_repo.get_by_user_id.return_value = _active_subscription(mock_user_id)

        response = client.post(
            "/api/stripe/checkout",
            json={"is_subscription": True, "plan_type": "Premium", "billing_interval": "yearly"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {
            "url": "https://checkout.stripe.com/c/cs_sub",
            "id": "cs_sub",
            "provider": "stripe",
        }
        stripe_service.get_or_create_customer.assert_awaited_once_with(
            mock_user_id, email="buyer@example.com", existing_customer_id="cus_123"
        )
        kwargs = stripe_service.create_subscription_checkout.call_args.kwargs
        assert kwargs["plan_type"] == PlanType.PREMIUM
        assert kwargs["interval"] == BillingInterval.YEARLY

    def test_image_checkout_anonymous(self, client, stripe_service, mock_image_repo, sample_image, image_id):
        mock_image_repo.get.return_value = sample_image

        response = client.post(
            "/api/stripe/checkout",
            json={"image_id": image_id, "license_type": "commercial"},
        )

        assert response.status_code == 200
        assert response.json()["id"] == "cs_img"
        kwargs = stripe_service.create_image_checkout.call_args.kwargs
        assert kwargs["user_id"] is None
        assert kwargs["image_name"] == "sunset.jpg"

    def test_image_checkout_unknown_image(self, client, stripe_service, image_id):
        response = client.post("/api/stripe/checkout", json={"image_id": image_id})
        assert response.status_code == 404

    def test_image_checkout_requires_image_id(self, client, stripe_service):
        response = client.post("/api/stripe/checkout", json={})
        assert response.status_code == 400


class TestStripeActivation:

    def _paid_subscription_session(self, metadata: dict) -> dict:
        return {
            "id": "cs_sub",
            "mode": "subscription",
            "status": "complete",
            "payment_status": "paid",
            "customer": "cus_123",
            "subscription": {"id": "sub_123", "current_period_start": 1767225600},
            "metadata": metadata,
        }

    def test_activation_uses_fallback_user(self, client, stripe_service, mock_reconciler):
        stripe_service.retrieve_checkout_session.return_value = self._paid_subscription_session(
            {"planType": "standard", "billingInterval": "monthly"}
        )
        mock_reconciler.reconcile.return_value = ReconcileResult(
            success=True, outcome=ReconcileOutcome.CREATED
        )

        response = client.post(
            "/api/stripe/activate-subscription",
            json={"session_id": "cs_sub", "user_id": FALLBACK_USER_ID},
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "created"
        event = mock_reconciler.reconcile.call_args.args[0]
        assert isinstance(event, SubscriptionActivated)
        assert event.user_id == FALLBACK_USER_ID
        assert event.external_id == "sub_123"
        assert event.period_start == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_authenticated_user_wins_over_metadata(
        self, client, stripe_service, mock_reconciler, auth_headers, mock_user_id
    ):
        stripe_service.retrieve_checkout_session.return_value = self._paid_subscription_session(
            {"userId": FALLBACK_USER_ID, "planType": "premium"}
        )
        mock_reconciler.reconcile.return_value = ReconcileResult(
            success=True, outcome=ReconcileOutcome.UPDATED
        )

        response = client.post(
            "/api/stripe/activate-subscription",
            json={"session_id": "cs_sub"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert mock_reconciler.reconcile.call_args.args[0].user_id == mock_user_id

    def test_unpaid_session_rejected(self, client, stripe_service, mock_reconciler):
        stripe_service.retrieve_checkout_session.return_value = {
            "id": "cs_sub",
            "mode": "subscription",
            "status": "open",
            "payment_status": "unpaid",
        }

        response = client.post("/api/stripe/activate-subscription", json={"session_id": "cs_sub"})

        assert response.status_code == 400
        mock_reconciler.reconcile.assert_not_called()

    def test_missing_user_is_bad_request(self, client, stripe_service, mock_reconciler):
        stripe_service.retrieve_checkout_session.return_value = self._paid_subscription_session({})
        mock_reconciler.reconcile.return_value = ReconcileResult.dropped("Missing user id")

        response = client.post("/api/stripe/activate-subscription", json={"session_id": "cs_sub"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing user id"

    def test_verify_session_reports_duplicate(self, client, stripe_service, mock_reconciler, image_id):
        stripe_service.retrieve_checkout_session.return_value = {
            "id": "cs_img",
            "mode": "payment",
            "payment_status": "paid",
            "amount_total": 500,
            "currency": "usd",
            "metadata": {"imageId": image_id, "licenseType": "standard", "userId": "anonymous"},
        }
        mock_reconciler.reconcile.return_value = ReconcileResult(
            success=True, outcome=ReconcileOutcome.DUPLICATE
        )

        response = client.post("/api/stripe/verify-session", json={"session_id": "cs_img"})

        assert response.status_code == 200
        assert response.json()["already_recorded"] is True
        event = mock_reconciler.reconcile.call_args.args[0]
        assert isinstance(event, PurchaseCompleted)
        assert event.image_id == image_id


class TestStripeSubscriptionManagement:

    def test_cancel_requires_ownership(
        self, client, stripe_service, auth_headers, mock_subscription_repo
    ):
        mock_subscription_repo.get_by_external_id.return_value = _active_subscription(FALLBACK_USER_ID)

        response = client.post(
            "/api/stripe/subscription/cancel",
            json={"subscription_id": "sub_123"},
            headers=auth_headers,
        )

        assert response.status_code == 404
        stripe_service.set_cancel_at_period_end.assert_not_called()

    def test_cancel_at_period_end(
        self, client, stripe_service, auth_headers, mock_user_id, mock_subscription_repo
    ):
        mock_subscription_repo.get_by_external_id.return_value = _active_subscription(mock_user_id)
        mock_subscription_repo.update_fields.return_value = _active_subscription(
            mock_user_id, cancel_at_period_end=True
        )

        response = client.post(
            "/api/stripe/subscription/cancel",
            json={"subscription_id": "sub_123"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["subscription"]["cancel_at_period_end"] is True
        stripe_service.set_cancel_at_period_end.assert_awaited_once_with("sub_123", True)
        mock_subscription_repo.update_fields.assert_awaited_once_with(mock_user_id, cancel_at_period_end=True)

    def test_reactivate(self, client, stripe_service, auth_headers, mock_user_id, mock_subscription_repo):
        mock_subscription_repo.get_by_external_id.return_value = _active_subscription(mock_user_id)
        mock_subscription_repo.update_fields.return_value = _active_subscription(mock_user_id)

        response = client.post(
            "/api/stripe/subscription/reactivate",
            json={"subscription_id": "sub_123"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        stripe_service.set_cancel_at_period_end.assert_awaited_once_with("sub_123", False)

    def test_portal_without_customer(self, client, stripe_service, auth_headers):
        response = client.post("/api/stripe/customer-portal", headers=auth_headers)
        assert response.status_code == 404

    def test_portal(self, client, stripe_service, auth_headers, mock_user_id, mock_subscription_repo):
        mock_subscription_repo.get_by_user_id.return_value = _active_subscription(mock_user_id)

        response = client.post("/api/stripe/customer-portal", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"url": "https://billing.stripe.com/p/session"}
        stripe_service.create_portal_session.assert_awaited_once_with("cus_123")

    def test_plan_change_opens_checkout_for_same_customer(
        self, client, stripe_service, auth_headers, mock_user_id, mock_subscription_repo
    ):
        mock_subscription_repo.get_by_external_id.return_value = _active_subscription(
            mock_user_id, billing_interval=BillingInterval.YEARLY
        )

        response = client.post(
            "/api/stripe/subscription/update",
            json={"subscription_id": "sub_123", "plan_type": "commercial"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["url"] == "https://checkout.stripe.com/c/cs_sub"
        stripe_service.create_subscription_checkout.assert_awaited_once_with(
            customer_id="cus_123",
            plan_type=PlanType.COMMERCIAL,
            interval=BillingInterval.YEARLY,
            user_id=mock_user_id,
        )

    def test_plan_change_requires_ownership(
        self, client, stripe_service, auth_headers, mock_subscription_repo
    ):
        mock_subscription_repo.get_by_external_id.return_value = _active_subscription(FALLBACK_USER_ID)

        response = client.post(
            "/api/stripe/subscription/update",
            json={"subscription_id": "sub_123", "plan_type": "premium", "billing_interval": "monthly"},
            headers=auth_headers,
        )

        assert response.status_code == 404
        stripe_service.create_subscription_checkout.assert_not_called()


class TestPurchaseDetails:

    def _purchase(self, image_id: str, **overrides) -> Purchase:
        values = dict(
            image_id=image_id,
            license_type=LicenseType.PREMIUM,
            amount_paid=1500,
            payment_method=PaymentProvider.STRIPE,
            stripe_session_id="cs_img",
            purchased_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
        )
        values.update(overrides)
        return Purchase(**values)

    def test_recorded_purchase_joined_with_image(
        self, client, stripe_service, mock_purchase_repo, mock_image_repo, sample_image, image_id
    ):
        mock_purchase_repo.get_by_provider_key.return_value = self._purchase(image_id)
        mock_image_repo.get.return_value = sample_image

        response = client.get("/api/purchase/details?session_id=cs_img")

        assert response.status_code == 200
        body = response.json()
        assert body["image_name"] == "sunset.jpg"
        assert body["license_type"] == "premium"
        assert body["amount_paid"] == 1500
        assert body["session_id"] == "cs_img"
        assert body["size_bytes"] == 1024
        mock_purchase_repo.get_by_provider_key.assert_awaited_once_with(PaymentProvider.STRIPE, "cs_img")
        stripe_service.retrieve_checkout_session.assert_not_called()

    def test_paid_session_backfilled(
        self, client, stripe_service, mock_reconciler, mock_purchase_repo, image_id
    ):
        stripe_service.retrieve_checkout_session.return_value = {
            "id": "cs_img",
            "mode": "payment",
            "payment_status": "paid",
            "amount_total": 1500,
            "currency": "usd",
            "metadata": {"imageId": image_id, "licenseType": "premium"},
        }
        mock_reconciler.reconcile.return_value = ReconcileResult(
            success=True, outcome=ReconcileOutcome.CREATED, purchase=self._purchase(image_id)
        )

        response = client.get("/api/purchase/details?session_id=cs_img")

        assert response.status_code == 200
        body = response.json()
        assert body["image_name"] == "Unknown Image"
        assert body["payment_status"] == "completed"
        event = mock_reconciler.reconcile.call_args.args[0]
        assert isinstance(event, PurchaseCompleted)
        assert event.external_id == "cs_img"

    def test_unpaid_session_not_found(self, client, stripe_service, mock_reconciler):
        stripe_service.retrieve_checkout_session.return_value = {
            "id": "cs_open",
            "mode": "payment",
            "payment_status": "unpaid",
        }

        response = client.get("/api/purchase/details?session_id=cs_open")

        assert response.status_code == 404
        mock_reconciler.reconcile.assert_not_called()

    def test_other_users_purchase_hidden(
        self, client, stripe_service, mock_purchase_repo, auth_headers, image_id
    ):
        mock_purchase_repo.get_by_provider_key.return_value = self._purchase(image_id, user_id=FALLBACK_USER_ID)

        response = client.get("/api/purchase/details?session_id=cs_img", headers=auth_headers)

        assert response.status_code == 404

    def test_session_id_required(self, client, stripe_service):
        assert client.get("/api/purchase/details").status_code == 422


# =============================================================================
# PayPal
# =============================================================================

class TestPayPalRoutes:

    def test_checkout_returns_approval_link(self, client, paypal_service, mock_image_repo, sample_image, image_id):
        mock_image_repo.get.return_value = sample_image

        response = client.post("/api/paypal/checkout", json={"image_id": image_id, "license_type": "premium"})

        assert response.status_code == 200
        assert response.json() == {
            "url": "https://www.sandbox.paypal.com/checkoutnow?token=ORDER-1",
            "id": "ORDER-1",
            "provider": "paypal",
        }

    def test_capture_records_purchase(self, client, paypal_service, mock_reconciler, image_id):
        paypal_service.capture_order.return_value = {
            "id": "ORDER-1",
            "status": "COMPLETED",
            "purchase_units": [
                {
                    "custom_id": f"img_{image_id}_lic_premium",
                    "payments": {
                        "captures": [
                            {"id": "CAP-1", "amount": {"value": "15.00", "currency_code": "USD"}}
                        ]
                    },
                }
            ],
        }
        mock_reconciler.reconcile.return_value = ReconcileResult(
            success=True, outcome=ReconcileOutcome.CREATED
        )

        response = client.post("/api/paypal/capture", json={"order_id": "ORDER-1"})

        assert response.status_code == 200
        assert response.json()["already_recorded"] is False
        event = mock_reconciler.reconcile.call_args.args[0]
        assert event.external_id == "ORDER-1"
        assert event.payment_id == "CAP-1"
        assert event.amount == 1500

    def test_capture_not_completed(self, client, paypal_service, mock_reconciler):
        paypal_service.capture_order.return_value = {"id": "ORDER-1", "status": "PAYER_ACTION_REQUIRED"}

        response = client.post("/api/paypal/capture", json={"order_id": "ORDER-1"})

        assert response.status_code == 400
        mock_reconciler.reconcile.assert_not_called()

    def test_subscription_requires_user(self, client, paypal_service):
        response = client.post("/api/paypal/subscription", json={"plan_type": "standard", "user_id": "anonymous"})
        assert response.status_code == 400
        assert response.json()["detail"] == "User ID is required"

    def test_subscription_with_fallback_user(self, client, paypal_service):
        response = client.post(
            "/api/paypal/subscription",
            json={"plan_type": "premium", "billing_interval": "yearly", "user_id": FALLBACK_USER_ID},
        )

        assert response.status_code == 200
        assert response.json()["approval_url"] == "https://paypal/approve"
        paypal_service.create_subscription.assert_awaited_once_with(
            PlanType.PREMIUM, BillingInterval.YEARLY, FALLBACK_USER_ID, None
        )

    def test_activation_checks_remote_status_in_production(self, client, paypal_service, mock_reconciler):
        paypal_service.get_subscription.return_value = {"id": "I-SUB1", "status": "APPROVAL_PENDING"}

        with patch("app.api.routes.paypal.get_settings") as mock_settings:
            mock_settings.return_value.is_production = True
            response = client.post(
                "/api/paypal/activate-subscription",
                json={"subscription_id": "I-SUB1", "plan_type": "standard", "user_id": FALLBACK_USER_ID},
            )

        assert response.status_code == 400
        mock_reconciler.reconcile.assert_not_called()

    def test_activation_reconciles(self, client, paypal_service, mock_reconciler):
        mock_reconciler.reconcile.return_value = ReconcileResult(
            success=True, outcome=ReconcileOutcome.CREATED
        )

        with patch("app.api.routes.paypal.get_settings") as mock_settings:
            mock_settings.return_value.is_production = True
            response = client.post(
                "/api/paypal/activate-subscription",
                json={
                    "subscription_id": "I-SUB1",
                    "plan_type": "commercial",
                    "billing_interval": "yearly",
                    "user_id": FALLBACK_USER_ID,
                },
            )

        assert response.status_code == 200
        paypal_service.get_subscription.assert_awaited_once_with("I-SUB1")
        event = mock_reconciler.reconcile.call_args.args[0]
        assert event.provider == PaymentProvider.PAYPAL
        assert event.plan_type == PlanType.COMMERCIAL
        assert event.billing_interval == BillingInterval.YEARLY

    def test_sandbox_subscription_skips_remote_check(self, client, paypal_service, mock_reconciler):
        mock_reconciler.reconcile.return_value = ReconcileResult(
            success=True, outcome=ReconcileOutcome.CREATED
        )

        with patch("app.api.routes.paypal.get_settings") as mock_settings:
            mock_settings.return_value.is_production = False
            response = client.post(
                "/api/paypal/activate-subscription",
                json={"subscription_id": "I-TEST42", "plan_type": "standard", "user_id": FALLBACK_USER_ID},
            )

        assert response.status_code == 200
        paypal_service.get_subscription.assert_not_called()

    def test_sandbox_subscription_refused_in_production(self, client, paypal_service, mock_reconciler):
        paypal_service.get_subscription.return_value = {"id": "I-TEST-forged", "status": "CANCELLED"}

        with patch("app.api.routes.paypal.get_settings") as mock_settings:
            mock_settings.return_value.is_production = True
            response = client.post(
                "/api/paypal/activate-subscription",
                json={
                    "subscription_id": "I-TEST-forged",
                    "plan_type": "commercial",
                    "billing_interval": "yearly",
                    "user_id": FALLBACK_USER_ID,
                },
            )

        assert response.status_code == 400
        paypal_service.get_subscription.assert_not_called()
        mock_reconciler.reconcile.assert_not_called()


# =============================================================================
# Crypto
# =============================================================================

class TestCryptoRoutes:

    def test_image_charge(self, client, coinbase_service, mock_image_repo, sample_image, image_id):
        mock_image_repo.get.return_value = sample_image

        response = client.post("/api/crypto/checkout", json={"image_id": image_id})

        assert response.status_code == 200
        assert response.json() == {
            "url": "https://commerce.coinbase.com/charges/ABC",
            "id": "charge-1",
            "provider": "crypto",
        }

    def test_subscription_charge_requires_user(self, client, coinbase_service):
        response = client.post("/api/crypto/subscription", json={"plan_type": "standard"})
        assert response.status_code == 401

    def test_subscription_charge(self, client, coinbase_service, auth_headers, mock_user_id):
        response = client.post(
            "/api/crypto/subscription",
            json={"plan_type": "premium", "billing_interval": "monthly"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["id"] == "charge-2"
        coinbase_service.create_subscription_charge.assert_awaited_once_with(
            PlanType.PREMIUM, BillingInterval.MONTHLY, mock_user_id, None
        )


# =============================================================================
# Subscriptions
# =============================================================================

class TestSubscriptionRoutes:

    def test_sync_active_is_activation(self, client, override_repositories, auth_headers, mock_reconciler, mock_user_id):
        mock_reconciler.reconcile.return_value = ReconcileResult(
            success=True, outcome=ReconcileOutcome.UPDATED
        )

        response = client.post(
            "/api/subscriptions/sync",
            json={"subscription_id": "I-SUB1", "provider": "paypal", "plan_type": "standard"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        event = mock_reconciler.reconcile.call_args.args[0]
        assert isinstance(event, SubscriptionActivated)
        assert event.user_id == mock_user_id

    def test_sync_other_status_is_status_change(self, client, override_repositories, auth_headers, mock_reconciler):
        mock_reconciler.reconcile.return_value = ReconcileResult(
            success=False, outcome=ReconcileOutcome.NOT_FOUND, error="Subscription not found"
        )

        response = client.post(
            "/api/subscriptions/sync",
            json={
                "subscription_id": "I-SUB1",
                "provider": "paypal",
                "plan_type": "standard",
                "status": "expired",
            },
            headers=auth_headers,
        )

        assert response.status_code == 404
        event = mock_reconciler.reconcile.call_args.args[0]
        assert isinstance(event, SubscriptionStatusChanged)
        assert event.status == SubscriptionStatus.EXPIRED

    def test_cancel_without_subscription(self, client, override_repositories, auth_headers):
        response = client.post("/api/subscriptions/cancel", headers=auth_headers)
        assert response.status_code == 404

    def test_cancel(self, client, override_repositories, auth_headers, mock_user_id, mock_subscription_repo, mock_reconciler):
        mock_subscription_repo.get_by_user_id.return_value = _active_subscription(
            mock_user_id, payment_provider=PaymentProvider.CRYPTO
        )
        mock_reconciler.reconcile.return_value = ReconcileResult(
            success=True, outcome=ReconcileOutcome.UPDATED
        )

        response = client.post("/api/subscriptions/cancel", headers=auth_headers)

        assert response.status_code == 200
        event = mock_reconciler.reconcile.call_args.args[0]
        assert event.status == SubscriptionStatus.CANCELLED
        assert event.provider == PaymentProvider.CRYPTO

    def test_access_for_subscriber(self, client, override_repositories, auth_headers, mock_user_id, mock_subscription_repo):
        mock_subscription_repo.get_by_user_id.return_value = _active_subscription(
            mock_user_id, plan_type=PlanType.COMMERCIAL
        )

        response = client.get("/api/subscription/access", headers=auth_headers)

        body = response.json()
        assert body["has_active_subscription"] is True
        assert body["access_level"] == "enterprise"
        assert body["can_download"] is True
        assert body["user_type"] == "subscription"
