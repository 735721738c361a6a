"""
Coinbase Commerce Service

Creates crypto charges for image licenses and subscription periods, and
verifies webhook deliveries (HMAC-SHA256 of the raw body, hex digest in
the X-CC-Webhook-Signature header).

API Docs: https://docs.cdp.coinbase.com/commerce-onchain/docs/welcome
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

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

SIGNATURE_HEADER = "X-CC-Webhook-Signature"


def compute_signature(secret: str, payload: bytes) -> str:
    """Hex HMAC-SHA256 digest Coinbase puts in the signature header."""
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


class CoinbaseCommerceService:
    """
    Coinbase Commerce REST client.

    Args:
        transport: Optional httpx transport (tests inject httpx.MockTransport)
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = get_settings()
        self.api_key = settings.coinbase_commerce_api_key
        self.webhook_secret = settings.coinbase_commerce_webhook_secret
        self.base_url = settings.coinbase_commerce_base_url.rstrip("/")
        self.api_version = settings.coinbase_commerce_api_version
        self.app_url = settings.app_url.rstrip("/")
        self.timeout = settings.provider_timeout_seconds
        self._transport = transport

        if not self.api_key:
            logger.warning("COINBASE_COMMERCE_API_KEY not configured")

    async def _create_charge(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ConfigurationError(
                "Cryptocurrency payment gateway is not configured",
                missing_keys=["COINBASE_COMMERCE_API_KEY"],
            )

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.post(
                "/charges",
                json=payload,
                headers={
                    "X-CC-Api-Key": self.api_key,
                    "X-CC-Version": self.api_version,
                },
            )

        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text}

        error = data.get("error") if isinstance(data, dict) else None
        if not response.is_success or error:
            message = error.get("message") if isinstance(error, dict) else None
            logger.error(f"[COINBASE] Charge creation failed ({response.status_code}): {data}")
            raise PaymentProviderError(
                message or "Failed to create crypto charge",
                provider="crypto",
                status_code=response.status_code if not response.is_success else 502,
                payload=error or data,
            )

        charge = data.get("data") or {}
        if not charge.get("hosted_url"):
            raise PaymentProviderError(
                "Could not retrieve checkout URL from crypto gateway",
                provider="crypto",
                payload=data,
            )

        logger.info(f"[COINBASE] Created charge {charge.get('id')}")
        return charge

    async def create_image_charge(
        self,
        image_id: str,
        image_name: str,
        license_type: LicenseType,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Charge for a one-time image license; metadata.image_id marks it as a purchase."""
        price = IMAGE_LICENSES[license_type]
        metadata = {"image_id": image_id, "license_type": license_type.value}
        if user_id:
            metadata["user_id"] = user_id

        return await self._create_charge(
            {
                "name": image_name or price.name,
                "description": f"{price.name} - {license_type.value}",
                "local_price": {"amount": price.decimal_amount, "currency": price.currency.upper()},
                "pricing_type": "fixed_price",
                "metadata": metadata,
                "redirect_url": f"{self.app_url}/gallery/success?method=crypto",
                "cancel_url": f"{self.app_url}/gallery/{image_id}?cancelled=true",
            }
        )

    async def create_subscription_charge(
        self,
        plan_type: PlanType,
        interval: BillingInterval,
        user_id: str,
        user_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Charge for one subscription period.

        Crypto has no recurring billing; each confirmed charge activates one
        period and its id becomes the subscription's crypto_charge_id.
        """
        plan = get_plan(plan_type)
        label = "Yearly" if interval == BillingInterval.YEARLY else "Monthly"
        metadata = {
            "user_id": user_id,
            "plan_type": plan_type.value,
            "billing_interval": interval.value,
        }
        if user_email:
            metadata["user_email"] = user_email

        return await self._create_charge(
            {
                "name": f"{plan.name} - {label} Subscription",
                "description": plan.description,
                "pricing_type": "fixed_price",
                "local_price": {"amount": f"{plan.price_for(interval):.2f}", "currency": "USD"},
                "metadata": metadata,
                "redirect_url": f"{self.app_url}/account/subscriptions?success=true&provider=crypto",
                "cancel_url": f"{self.app_url}/membership?cancelled=true&provider=crypto",
            }
        )

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> None:
        """
        Check the X-CC-Webhook-Signature header against the shared secret.

        Raises:
            ConfigurationError if no webhook secret is configured
            WebhookVerificationError if the signature is missing or wrong
        """
        if not self.webhook_secret:
            raise ConfigurationError(
                "Coinbase Commerce webhook secret not configured",
                missing_keys=["COINBASE_COMMERCE_WEBHOOK_SECRET"],
            )
        if not signature:
            raise WebhookVerificationError(f"Missing {SIGNATURE_HEADER} header", provider="crypto")

        expected = compute_signature(self.webhook_secret, payload)
        if not hmac.compare_digest(expected, signature.strip()):
            raise WebhookVerificationError("Invalid Coinbase Commerce signature", provider="crypto")


# =============================================================================
# Singleton Instance
# =============================================================================

_coinbase_service_instance: Optional[CoinbaseCommerceService] = None


def get_coinbase_service() -> CoinbaseCommerceService:
    """Get or create Coinbase Commerce service singleton."""
    global _coinbase_service_instance

    if _coinbase_service_instance is None:
        _coinbase_service_instance = CoinbaseCommerceService()

    return _coinbase_service_instance
