"""
PayPal Payment Service

REST client for the PayPal APIs used by the gallery: one-time orders
(create/capture), catalog products, billing plans and subscriptions, and
webhook signature verification.

API Docs: https://developer.paypal.com/api/rest/
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

import httpx

from app.config.settings import get_settings
from app.domain.purchase import IMAGE_LICENSES, LicenseType
from app.domain.subscription import BillingInterval, PlanType, get_plan
from app.infrastructure.exceptions import (
    ConfigurationError,
    PaymentProviderError,
    WebhookVerificationError,
)


logger = logging.getLogger(__name__)


# Headers PayPal signs every webhook delivery with
PAYPAL_SIGNATURE_HEADERS = {
    "transmission_id": "paypal-transmission-id",
    "transmission_time": "paypal-transmission-time",
    "cert_url": "paypal-cert-url",
    "auth_algo": "paypal-auth-algo",
    "transmission_sig": "paypal-transmission-sig",
}


def paypal_custom_id(image_id: str, license_type: LicenseType) -> str:
    """custom_id attached to image orders so a capture can be traced back."""
    return f"img_{image_id}_lic_{license_type.value}"


def parse_paypal_custom_id(custom_id: Optional[str]) -> Optional[tuple[str, str]]:
    """Inverse of paypal_custom_id: (image_id, license_type) or None."""
    if not custom_id or not custom_id.startswith("img_") or "_lic_" not in custom_id:
        return None
    image_part, license_part = custom_id[len("img_"):].rsplit("_lic_", 1)
    if not image_part or not license_part:
        return None
    return image_part, license_part


class PayPalService:
    """
    PayPal REST client.

    A fresh OAuth token is requested per operation; PayPal tokens are cheap
    and the handlers are short-lived.

    Args:
        transport: Optional httpx transport (tests inject httpx.MockTransport)
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = get_settings()
        self.client_id = settings.paypal_client_id
        self.client_secret = settings.paypal_client_secret
        self.base_url = settings.paypal_base_url
        self.webhook_id = settings.paypal_webhook_id
        self.app_url = settings.app_url.rstrip("/")
        self.timeout = settings.provider_timeout_seconds
        self._transport = transport

        if not self.client_id or not self.client_secret:
            logger.warning("PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET not configured")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> Dict[str, Any]:
        """Decode a PayPal response, raising PaymentProviderError on non-2xx."""
        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {"raw": response.text}

        if response.is_success:
            return data

        message = None
        if isinstance(data, dict):
            details = data.get("details") or []
            if details and isinstance(details[0], dict):
                message = details[0].get("description")
            message = message or data.get("message") or data.get("error_description")
        logger.error(f"[PAYPAL] {action} failed ({response.status_code}): {data}")
        raise PaymentProviderError(
            message or f"Failed to {action}",
            provider="paypal",
            status_code=response.status_code,
            payload=data,
        )

    # =========================================================================
    # Authentication
    # =========================================================================

    async def get_access_token(self) -> str:
        """Client-credentials OAuth token."""
        if not self.client_id or not self.client_secret:
            raise ConfigurationError(
                "PayPal credentials not configured",
                missing_keys=["PAYPAL_CLIENT_ID", "PAYPAL_CLIENT_SECRET"],
            )

        async with self._client() as client:
            response = await client.post(
                "/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
            )
        data = self._raise_for_status(response, "get access token")
        return data["access_token"]

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        token = await self.get_access_token()
        request_headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        request_headers.update(headers or {})

        async with self._client() as client:
            response = await client.request(method, path, json=json, headers=request_headers)
        return self._raise_for_status(response, action)

    # =========================================================================
    # One-time Orders
    # =========================================================================

    async def create_order(self, image_id: str, license_type: LicenseType) -> Dict[str, Any]:
        """
        Create a CAPTURE-intent order for an image license.

        Returns:
            PayPal order resource (``id`` is what the JS SDK needs)
        """
        price = IMAGE_LICENSES[license_type]
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "amount": {
                        "currency_code": price.currency.upper(),
                        "value": price.decimal_amount,
                    },
                    "description": f"License ({license_type.value}) for image {image_id}",
                    "custom_id": paypal_custom_id(image_id, license_type),
                }
            ],
        }
        order = await self._request("POST", "/v2/checkout/orders", "create order", json=payload)
        logger.info(f"[PAYPAL] Created order {order.get('id')} for image {image_id}")
        return order

    async def capture_order(self, order_id: str) -> Dict[str, Any]:
        """Capture an approved order."""
        result = await self._request(
            "POST",
            f"/v2/checkout/orders/{order_id}/capture",
            "capture order",
            headers={"PayPal-Request-Id": f"capture-{order_id}"},
        )
        logger.info(f"[PAYPAL] Captured order {order_id}: {result.get('status')}")
        return result

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def ensure_product(self, plan_type: PlanType) -> str:
        """
        Create the catalog product for a plan tier, tolerating "already exists".

        Returns:
            Product id
        """
        plan = get_plan(plan_type)
        product_id = f"gallery_{plan_type.value}"
        payload: Dict[str, Any] = {
            "id": product_id,
            "name": plan.name,
            "description": plan.description,
            "type": "SERVICE",
            "category": "SOFTWARE",
        }
        if "localhost" not in self.app_url:
            payload["home_url"] = self.app_url

        try:
            await self._request(
                "POST",
                "/v1/catalogs/products",
                "create product",
                json=payload,
                headers={"PayPal-Request-Id": f"product-{product_id}", "Prefer": "return=representation"},
            )
        except PaymentProviderError as e:
            body = e.details.get("response") or {}
            duplicate = body.get("name") == "RESOURCE_ALREADY_EXISTS" or any(
                detail.get("issue") == "DUPLICATE_RESOURCE_IDENTIFIER"
                for detail in body.get("details") or []
                if isinstance(detail, dict)
            )
            if not duplicate:
                raise
        return product_id

    async def create_plan(self, plan_type: PlanType, interval: BillingInterval) -> Dict[str, Any]:
        """Create a billing plan for the tier/interval on top of its product."""
        product_id = await self.ensure_product(plan_type)
        plan = get_plan(plan_type)
        payload = {
            "product_id": product_id,
            "name": f"{plan.name} ({interval.value})",
            "description": plan.description,
            "status": "ACTIVE",
            "billing_cycles": [
                {
                    "frequency": {
                        "interval_unit": "YEAR" if interval == BillingInterval.YEARLY else "MONTH",
                        "interval_count": 1,
                    },
                    "tenure_type": "REGULAR",
                    "sequence": 1,
                    "total_cycles": 0,
                    "pricing_scheme": {
                        "fixed_price": {
                            "value": f"{plan.price_for(interval):.2f}",
                            "currency_code": "USD",
                        },
                    },
                }
            ],
            "payment_preferences": {
                "auto_bill_outstanding": True,
                "setup_fee_failure_action": "CONTINUE",
                "payment_failure_threshold": 3,
            },
        }
        return await self._request(
            "POST",
            "/v1/billing/plans",
            "create plan",
            json=payload,
            headers={"PayPal-Request-Id": f"plan-{uuid4()}", "Prefer": "return=representation"},
        )

    async def create_subscription(
        self,
        plan_type: PlanType,
        interval: BillingInterval,
        user_id: str,
        user_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a subscription awaiting buyer approval.

        ``custom_id`` carries the user id so BILLING.SUBSCRIPTION.ACTIVATED
        can find the user.

        Returns:
            {"subscription_id", "approval_url", "plan_id"}
        """
        paypal_plan = await self.create_plan(plan_type, interval)
        start_time = datetime.now(timezone.utc) + timedelta(minutes=1)

        payload: Dict[str, Any] = {
            "plan_id": paypal_plan["id"],
            "start_time": start_time.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "custom_id": user_id,
            "application_context": {
                "brand_name": "Gallery Subscription",
                "locale": "en-US",
                "shipping_preference": "NO_SHIPPING",
                "user_action": "SUBSCRIBE_NOW",
                "return_url": (
                    f"{self.app_url}/account?success=true&payment=paypal"
                    f"&plan={plan_type.value}&interval={interval.value}"
                ),
                "cancel_url": f"{self.app_url}/membership?canceled=true",
            },
        }
        if user_email:
            payload["subscriber"] = {"email_address": user_email}

        subscription = await self._request(
            "POST", "/v1/billing/subscriptions", "create subscription", json=payload
        )
        approval_url = next(
            (link["href"] for link in subscription.get("links", []) if link.get("rel") == "approve"),
            None,
        )
        if not approval_url:
            raise PaymentProviderError(
                "PayPal subscription has no approval link",
                provider="paypal",
                payload=subscription,
            )

        logger.info(f"[PAYPAL] Created subscription {subscription.get('id')} for user {user_id}")
        return {
            "subscription_id": subscription.get("id"),
            "approval_url": approval_url,
            "plan_id": paypal_plan["id"],
        }

    async def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """Fetch a subscription resource."""
        return await self._request(
            "GET", f"/v1/billing/subscriptions/{subscription_id}", "get subscription"
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    async def verify_webhook(self, headers: Mapping[str, str], event: Dict[str, Any]) -> bool:
        """
        Verify a webhook delivery through PayPal's verify-webhook-signature API.

        Args:
            headers: Request headers (case-insensitive mapping)
            event: Parsed webhook body

        Raises:
            WebhookVerificationError when headers are missing or PayPal says FAILURE
        """
        if not self.webhook_id:
            raise ConfigurationError("PayPal webhook id not configured", missing_keys=["PAYPAL_WEBHOOK_ID"])

        fields = {name: headers.get(header) for name, header in PAYPAL_SIGNATURE_HEADERS.items()}
        missing = [header for name, header in PAYPAL_SIGNATURE_HEADERS.items() if not fields[name]]
        if missing:
            raise WebhookVerificationError(
                f"Missing PayPal signature headers: {', '.join(missing)}",
                provider="paypal",
            )

        payload = dict(fields, webhook_id=self.webhook_id, webhook_event=event)
        result = await self._request(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            "verify webhook signature",
            json=payload,
        )
        if result.get("verification_status") != "SUCCESS":
            raise WebhookVerificationError("Invalid PayPal webhook signature", provider="paypal")
        return True


# =============================================================================
# Singleton Instance
# =============================================================================

_paypal_service_instance: Optional[PayPalService] = None


def get_paypal_service() -> PayPalService:
    """Get or create PayPal service singleton."""
    global _paypal_service_instance

    if _paypal_service_instance is None:
        _paypal_service_instance = PayPalService()

    return _paypal_service_instance
