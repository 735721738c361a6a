"""
Payment Webhook Handlers

Stripe, PayPal and Coinbase Commerce webhooks. Each endpoint verifies the
delivery, translates it into a PaymentEvent and hands it to the shared
processing flow:

1. Skip events already recorded in processed_webhook_events
2. Reconcile the event (upsert subscription / insert purchase)
3. Record the event id once it no longer needs a retry

Signature and payload failures return 400. Everything after verification
returns 200 with a status so providers do not retry-storm the endpoint.
"""

import json
import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter, HTTPException, Request, status

from app.api.dependencies import (
    CoinbaseServiceDep,
    PayPalServiceDep,
    ReconcilerDep,
    StripeServiceDep,
    WebhookEventRepoDep,
)
from app.config.settings import get_settings
from app.domain.events import PaymentEvent, ReconcileOutcome
from app.domain.reconciliation import PaymentReconciler
from app.domain.subscription import PaymentProvider
from app.infrastructure.db.repositories.webhook_event_repository import WebhookEventRepository
from app.infrastructure.exceptions import ConfigurationError, WebhookVerificationError
from app.infrastructure.payments.coinbase_service import SIGNATURE_HEADER
from app.infrastructure.payments.event_mapping import (
    coinbase_event_to_payment_event,
    paypal_event_to_payment_event,
    stripe_event_to_payment_event,
)


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Shared processing flow
# =============================================================================

def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _parse_json(payload: bytes) -> dict:
    if not payload or not payload.strip():
        raise _bad_request("No webhook payload provided")
    try:
        body = json.loads(payload)
    except ValueError:
        raise _bad_request("Invalid JSON payload")
    if not isinstance(body, dict):
        raise _bad_request("Invalid JSON payload")
    return body


def _translate(provider: PaymentProvider, translate: Callable[[], Optional[PaymentEvent]]) -> Optional[PaymentEvent]:
    try:
        return translate()
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Malformed {provider.value} webhook payload: {e}")
        raise _bad_request("Malformed webhook payload")


def _allow_unverified(provider: PaymentProvider, error: ConfigurationError) -> None:
    """Accept unverified deliveries outside production only."""
    if get_settings().is_production:
        logger.error(f"Rejecting {provider.value} webhook: {error.message}")
        raise _bad_request("Webhook verification is not configured")
    logger.warning(
        f"Processing UNVERIFIED {provider.value} webhook ({error.message}); "
        f"configure verification before going live"
    )


async def process_payment_webhook(
    provider: PaymentProvider,
    event_id: Optional[str],
    event_type: str,
    event: Optional[PaymentEvent],
    reconciler: PaymentReconciler,
    ledger: WebhookEventRepository,
) -> dict[str, Any]:
    """
    Dedup, reconcile and acknowledge one verified webhook event.

    Returns:
        Response body; the HTTP status is always 200.
    """
    if event_id and await ledger.is_processed(event_id):
        logger.info(f"{provider.value} event {event_id} already processed, skipping")
        return {"status": "already_processed"}

    logger.info(f"Processing {provider.value} webhook event: {event_type} ({event_id})")

    if event is None:
        logger.info(f"Unhandled {provider.value} event type: {event_type}")
        if event_id:
            await ledger.mark_processed(event_id, provider, event_type)
        return {"status": "ignored"}

    result = await reconciler.reconcile(event)

    if result.outcome == ReconcileOutcome.FAILED:
        logger.error(f"Error processing {provider.value} webhook {event_type}: {result.error}")
        return {"status": "error", "message": result.error}

    if result.outcome == ReconcileOutcome.NOT_FOUND:
        return {"status": "ignored", "outcome": result.outcome.value}

    if event_id:
        await ledger.mark_processed(event_id, provider, event_type)

    if result.outcome == ReconcileOutcome.DROPPED:
        return {"status": "dropped", "message": result.error}

    return {"status": "success", "outcome": result.outcome.value}


# =============================================================================
# Stripe
# =============================================================================

@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_service: StripeServiceDep,
    reconciler: ReconcilerDep,
    ledger: WebhookEventRepoDep,
):
    """
    Handle Stripe webhook events.

    checkout.session.completed (purchase or activation),
    customer.subscription.updated/deleted and invoice.payment_failed.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        event = stripe_service.verify_webhook_signature(payload, signature)
    except WebhookVerificationError as e:
        logger.error(f"Stripe webhook verification failed: {e.message}")
        raise _bad_request(e.message)
    except ConfigurationError as e:
        logger.error(f"Rejecting Stripe webhook: {e.message}")
        raise _bad_request("Webhook verification is not configured")

    event_type = event["type"]
    payment_event = _translate(
        PaymentProvider.STRIPE,
        lambda: stripe_event_to_payment_event(event, stripe_service.plan_for_price_id),
    )
    return await process_payment_webhook(
        PaymentProvider.STRIPE, event.get("id"), event_type, payment_event, reconciler, ledger
    )


# =============================================================================
# PayPal
# =============================================================================

@router.post("/paypal/webhook")
async def paypal_webhook(
    request: Request,
    paypal_service: PayPalServiceDep,
    reconciler: ReconcilerDep,
    ledger: WebhookEventRepoDep,
):
    """
    Handle PayPal webhook events.

    BILLING.SUBSCRIPTION.* lifecycle and PAYMENT.CAPTURE.COMPLETED.
    PAYMENT.SALE.COMPLETED (recurring charge) is logged only.
    """
    body = _parse_json(await request.body())

    try:
        await paypal_service.verify_webhook(request.headers, body)
    except ConfigurationError as e:
        _allow_unverified(PaymentProvider.PAYPAL, e)
    except WebhookVerificationError as e:
        logger.error(f"PayPal webhook verification failed: {e.message}")
        raise _bad_request(e.message)

    event_type = body.get("event_type") or "unknown"
    if event_type == "PAYMENT.SALE.COMPLETED":
        resource = body.get("resource") or {}
        logger.info(
            f"PayPal recurring payment completed for subscription "
            f"{resource.get('billing_agreement_id')}"
        )

    payment_event = _translate(PaymentProvider.PAYPAL, lambda: paypal_event_to_payment_event(body))
    return await process_payment_webhook(
        PaymentProvider.PAYPAL, body.get("id"), event_type, payment_event, reconciler, ledger
    )


# =============================================================================
# Coinbase Commerce
# =============================================================================

@router.post("/crypto/webhook")
async def crypto_webhook(
    request: Request,
    coinbase_service: CoinbaseServiceDep,
    reconciler: ReconcilerDep,
    ledger: WebhookEventRepoDep,
):
    """
    Handle Coinbase Commerce webhook events.

    charge:confirmed activates a subscription or records a purchase;
    charge:failed and charge:delayed are logged.
    """
    payload = await request.body()
    body = _parse_json(payload)

    try:
        coinbase_service.verify_webhook_signature(payload, request.headers.get(SIGNATURE_HEADER))
    except ConfigurationError as e:
        _allow_unverified(PaymentProvider.CRYPTO, e)
    except WebhookVerificationError as e:
        logger.error(f"Coinbase webhook verification failed: {e.message}")
        raise _bad_request(e.message)

    event = body.get("event") or body
    event_type = event.get("type") or "unknown"
    if event_type in ("charge:failed", "charge:delayed"):
        charge = event.get("data") or {}
        metadata = charge.get("metadata") or {}
        logger.warning(
            f"Coinbase charge {charge.get('id')} {event_type.split(':')[1]} "
            f"for user {metadata.get('user_id')}"
        )

    payment_event = _translate(PaymentProvider.CRYPTO, lambda: coinbase_event_to_payment_event(body))
    return await process_payment_webhook(
        PaymentProvider.CRYPTO, event.get("id"), event_type, payment_event, reconciler, ledger
    )
