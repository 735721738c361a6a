"""
Provider Event Mapping

Translates raw provider payloads (webhook bodies, retrieved sessions,
capture results) into PaymentEvent variants. Each translator returns None
for events that carry no row change; the caller logs and acknowledges them.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional

from app.domain.events import (
    PaymentEvent,
    PurchaseCompleted,
    SubscriptionActivated,
    SubscriptionStatusChanged,
)
from app.domain.purchase import parse_license_type
from app.domain.subscription import (
    BillingInterval,
    PaymentProvider,
    PlanType,
    SubscriptionStatus,
    parse_billing_interval,
    parse_plan_type,
)
from app.infrastructure.payments.paypal_service import parse_paypal_custom_id


logger = logging.getLogger(__name__)

PriceLookup = Callable[[Optional[str]], Optional[tuple[PlanType, BillingInterval]]]


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """dict.get that also tolerates None and non-mapping values."""
    if isinstance(obj, Mapping):
        value = obj.get(key, default)
        return default if value is None else value
    return default


def _id_of(value: Any) -> Optional[str]:
    """Stripe fields are either an id string or an expanded object."""
    if isinstance(value, str):
        return value
    return _get(value, "id")


def _from_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def to_minor_units(amount: Any) -> int:
    """Decimal string amount ("15.00") to integer cents."""
    try:
        return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))
    except (InvalidOperation, ValueError):
        return 0


def infer_plan_from_text(text: Optional[str]) -> tuple[PlanType, BillingInterval]:
    """Best-effort plan and interval from free text such as a PayPal plan id or name."""
    lowered = (text or "").lower()
    if "commercial" in lowered:
        plan_type = PlanType.COMMERCIAL
    elif "premium" in lowered:
        plan_type = PlanType.PREMIUM
    else:
        plan_type = PlanType.STANDARD

    if "year" in lowered or "annual" in lowered:
        interval = BillingInterval.YEARLY
    else:
        interval = BillingInterval.MONTHLY
    return plan_type, interval


# =============================================================================
# Stripe
# =============================================================================

STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.EXPIRED,
}


def _stripe_metadata_user(metadata: Any) -> Optional[str]:
    return _get(metadata, "userId") or _get(metadata, "user_id")


def _stripe_subscription_price_id(subscription: Any) -> Optional[str]:
    items = _get(_get(subscription, "items"), "data", [])
    if not items:
        return None
    return _id_of(_get(items[0], "price"))


def _stripe_period_start(subscription: Any) -> Optional[datetime]:
    start = _get(subscription, "current_period_start")
    if start is None:
        items = _get(_get(subscription, "items"), "data", [])
        if items:
            start = _get(items[0], "current_period_start")
    return _from_timestamp(start)


def stripe_session_to_event(
    session: Mapping[str, Any],
    price_lookup: Optional[PriceLookup] = None,
    user_id: Optional[str] = None,
) -> Optional[PaymentEvent]:
    """
    Map a completed Checkout Session onto a purchase or an activation.

    Args:
        session: Checkout Session (webhook object or retrieved with subscription expanded)
        price_lookup: Reverse price-id lookup used when metadata has no plan
        user_id: User id to use when the session metadata has none
    """
    metadata = _get(session, "metadata", {})
    mode = _get(session, "mode")
    resolved_user = _stripe_metadata_user(metadata) or _get(session, "client_reference_id") or user_id

    if mode == "payment":
        return PurchaseCompleted(
            provider=PaymentProvider.STRIPE,
            external_id=session["id"],
            image_id=_get(metadata, "imageId") or _get(metadata, "image_id") or "",
            license_type=parse_license_type(_get(metadata, "licenseType") or _get(metadata, "license_type")),
            amount=int(_get(session, "amount_total", 0)),
            currency=_get(session, "currency", "usd"),
            user_id=resolved_user,
        )

    if mode == "subscription":
        subscription = _get(session, "subscription")
        external_id = _id_of(subscription)
        if not external_id:
            logger.warning(f"Checkout session {_get(session, 'id')} has no subscription id")
            return None

        plan_hint = _get(metadata, "planType") or _get(metadata, "subscriptionType") or _get(metadata, "plan_type")
        interval_hint = _get(metadata, "billingInterval") or _get(metadata, "billing_interval")
        looked_up = price_lookup(_stripe_subscription_price_id(subscription)) if price_lookup else None

        plan_type = parse_plan_type(plan_hint, default=looked_up[0] if looked_up else PlanType.STANDARD)
        interval = parse_billing_interval(
            interval_hint,
            default=looked_up[1] if looked_up else BillingInterval.MONTHLY,
        )

        return SubscriptionActivated(
            provider=PaymentProvider.STRIPE,
            user_id=resolved_user,
            external_id=external_id,
            plan_type=plan_type,
            billing_interval=interval,
            period_start=_stripe_period_start(subscription),
            customer_id=_id_of(_get(session, "customer")),
        )

    return None


def stripe_event_to_payment_event(
    event: Mapping[str, Any],
    price_lookup: Optional[PriceLookup] = None,
) -> Optional[PaymentEvent]:
    """Map a verified Stripe webhook event."""
    event_type = event["type"]
    obj = event["data"]["object"]

    if event_type == "checkout.session.completed":
        return stripe_session_to_event(obj, price_lookup)

    if event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
        if event_type == "customer.subscription.deleted":
            status = SubscriptionStatus.CANCELLED
        else:
            status = STRIPE_STATUS_MAP.get(_get(obj, "status"))
        if status is None:
            logger.info(f"Ignoring Stripe subscription status {_get(obj, 'status')!r}")
            return None
        return SubscriptionStatusChanged(
            provider=PaymentProvider.STRIPE,
            status=status,
            user_id=_stripe_metadata_user(_get(obj, "metadata", {})),
            external_id=obj["id"],
            cancel_at_period_end=bool(_get(obj, "cancel_at_period_end", False)),
        )

    if event_type == "invoice.payment_failed":
        subscription_id = _id_of(_get(obj, "subscription")) or _get(
            _get(_get(obj, "parent"), "subscription_details"), "subscription"
        )
        if not subscription_id:
            return None
        return SubscriptionStatusChanged(
            provider=PaymentProvider.STRIPE,
            status=SubscriptionStatus.PAST_DUE,
            external_id=subscription_id,
        )

    return None


# =============================================================================
# PayPal
# =============================================================================

PAYPAL_STATUS_EVENTS = {
    "BILLING.SUBSCRIPTION.CANCELLED": SubscriptionStatus.CANCELLED,
    "BILLING.SUBSCRIPTION.SUSPENDED": SubscriptionStatus.PAST_DUE,
    "BILLING.SUBSCRIPTION.EXPIRED": SubscriptionStatus.EXPIRED,
}


def paypal_capture_to_event(
    capture: Mapping[str, Any],
    user_id: Optional[str] = None,
) -> Optional[PaymentEvent]:
    """
    Map a completed order capture onto a purchase.

    Accepts both the capture-order response (order resource) and the
    PAYMENT.CAPTURE.COMPLETED webhook resource (capture resource).
    """
    if "purchase_units" in capture:
        if _get(capture, "status") != "COMPLETED":
            return None
        unit = capture["purchase_units"][0]
        captures = _get(_get(unit, "payments"), "captures", [])
        capture_item = captures[0] if captures else {}
        order_id = capture["id"]
        custom_id = _get(unit, "custom_id") or _get(capture_item, "custom_id")
    else:
        capture_item = capture
        order_id = _get(_get(_get(capture, "supplementary_data"), "related_ids"), "order_id")
        custom_id = _get(capture, "custom_id")

    parsed = parse_paypal_custom_id(custom_id)
    if not parsed or not order_id:
        logger.info(f"PayPal capture without an image custom_id ({custom_id!r}), nothing to record")
        return None

    image_id, license_type = parsed
    amount = _get(capture_item, "amount", {})
    return PurchaseCompleted(
        provider=PaymentProvider.PAYPAL,
        external_id=order_id,
        image_id=image_id,
        license_type=parse_license_type(license_type),
        amount=to_minor_units(_get(amount, "value", "0")),
        currency=str(_get(amount, "currency_code", "usd")).lower(),
        user_id=user_id,
        payment_id=_get(capture_item, "id"),
    )


def paypal_event_to_payment_event(event: Mapping[str, Any]) -> Optional[PaymentEvent]:
    """Map a PayPal webhook event."""
    event_type = _get(event, "event_type")
    resource = _get(event, "resource", {})

    if event_type == "BILLING.SUBSCRIPTION.ACTIVATED":
        plan_type, interval = infer_plan_from_text(_get(resource, "plan_id"))
        return SubscriptionActivated(
            provider=PaymentProvider.PAYPAL,
            user_id=_get(resource, "custom_id"),
            external_id=resource["id"],
            plan_type=plan_type,
            billing_interval=interval,
        )

    if event_type in PAYPAL_STATUS_EVENTS:
        return SubscriptionStatusChanged(
            provider=PaymentProvider.PAYPAL,
            status=PAYPAL_STATUS_EVENTS[event_type],
            user_id=_get(resource, "custom_id"),
            external_id=_get(resource, "id"),
        )

    if event_type == "PAYMENT.CAPTURE.COMPLETED":
        return paypal_capture_to_event(resource)

    return None


# =============================================================================
# Coinbase Commerce
# =============================================================================

def coinbase_event_to_payment_event(body: Mapping[str, Any]) -> Optional[PaymentEvent]:
    """
    Map a Coinbase Commerce webhook body.

    Deliveries wrap the event as ``{"event": {...}}``; a bare event is also accepted.
    """
    event = _get(body, "event") or body
    if _get(event, "type") != "charge:confirmed":
        return None

    charge = _get(event, "data", {})
    metadata = _get(charge, "metadata", {})
    charge_id = _get(charge, "id") or _get(charge, "code")
    if not charge_id:
        return None

    if _get(metadata, "plan_type"):
        return SubscriptionActivated(
            provider=PaymentProvider.CRYPTO,
            user_id=_get(metadata, "user_id"),
            external_id=charge_id,
            plan_type=parse_plan_type(_get(metadata, "plan_type")),
            billing_interval=parse_billing_interval(_get(metadata, "billing_interval")),
        )

    if _get(metadata, "image_id"):
        local = _get(_get(charge, "pricing"), "local", {})
        return PurchaseCompleted(
            provider=PaymentProvider.CRYPTO,
            external_id=charge_id,
            image_id=_get(metadata, "image_id"),
            license_type=parse_license_type(_get(metadata, "license_type")),
            amount=to_minor_units(_get(local, "amount", "0")),
            currency=str(_get(local, "currency", "usd")).lower(),
            user_id=_get(metadata, "user_id"),
        )

    return None
