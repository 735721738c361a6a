"""
API Dependencies

FastAPI dependency injection for authentication, payment services and the
reconciler.

Security: JWT tokens are verified cryptographically using Supabase JWKS (ES256)
with HS256 fallback via the JWT secret. Never decode without verification.
"""

import logging
from typing import Annotated, Optional

import jwt
from jwt import PyJWKClient
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config.settings import get_settings
from app.domain.events import normalize_uuid
from app.domain.reconciliation import PaymentReconciler
from app.infrastructure.db.dependencies import PurchaseRepoDep, SubscriptionRepoDep
from app.infrastructure.payments import (
    CoinbaseCommerceService,
    PayPalService,
    StripeService,
    get_coinbase_service,
    get_paypal_service,
    get_stripe_service,
)
from app.infrastructure.storage import SupabaseStorage, get_storage


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Cached JWKS client; PyJWKClient caches keys internally and refreshes them.
_jwks_client: Optional[PyJWKClient] = None


def _get_jwks_client() -> PyJWKClient:
    """Return a singleton PyJWKClient for the Supabase JWKS endpoint."""
    global _jwks_client
    if _jwks_client is None:
        settings = get_settings()
        jwks_url = f"{settings.supabase_url}/auth/v1/.well-known/jwks.json"
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


def _decode_with_jwks(token: str, issuer: str) -> dict:
    """Verify JWT using Supabase JWKS endpoint (ES256 asymmetric keys)."""
    client = _get_jwks_client()
    signing_key = client.get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["ES256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


def _decode_with_secret(token: str, secret: str, issuer: str) -> dict:
    """Verify JWT using HS256 symmetric secret (legacy Supabase signing)."""
    return jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


async def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Verify a Supabase JWT and return its claims.

    Verification strategy (in order):
      1. JWKS (ES256), supports key rotation automatically.
      2. HS256 with ``SUPABASE_JWT_SECRET`` for legacy signing.

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials
    settings = get_settings()
    issuer = f"{settings.supabase_url}/auth/v1"

    payload: Optional[dict] = None

    try:
        payload = _decode_with_jwks(token, issuer)
    except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as jwks_err:
        logger.debug("JWKS verification failed, trying HS256 fallback: %s", jwks_err)

    if payload is None and settings.supabase_jwt_secret:
        try:
            payload = _decode_with_secret(token, settings.supabase_jwt_secret, issuer)
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
            )
        except jwt.InvalidTokenError as e:
            logger.warning("HS256 JWT verification also failed: %s", e)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or unverifiable token",
        )

    if not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID",
        )

    return payload


async def get_current_user_id(claims: dict = Depends(get_current_claims)) -> str:
    """Authenticated user ID (``sub`` claim)."""
    return claims["sub"]


async def get_optional_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[dict]:
    """
    Optionally verify the JWT token.

    Returns ``None`` if no token is provided or it does not verify.
    """
    if not credentials:
        return None

    try:
        return await get_current_claims(credentials)
    except HTTPException:
        return None


async def get_optional_user_id(claims: Optional[dict] = Depends(get_optional_claims)) -> Optional[str]:
    return claims["sub"] if claims else None


async def get_optional_user_email(claims: Optional[dict] = Depends(get_optional_claims)) -> Optional[str]:
    """Email claim, passed to Stripe so receipts reach the buyer."""
    return claims.get("email") if claims else None


def resolve_user_id(authenticated: Optional[str], fallback: Optional[str]) -> Optional[str]:
    """
    Pick the user for a client-reported payment.

    The verified token wins. The client-supplied id is only used when there
    is no session (redirects back to localhost drop the auth header) and
    only if it is a well-formed UUID.
    """
    if authenticated:
        return authenticated
    candidate = normalize_uuid(fallback)
    if candidate:
        logger.info(f"Using client-supplied fallback user id {candidate}")
    return candidate


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
OptionalUserId = Annotated[Optional[str], Depends(get_optional_user_id)]
OptionalUserEmail = Annotated[Optional[str], Depends(get_optional_user_email)]


# =============================================================================
# Service providers
# =============================================================================

def get_payment_reconciler(
    subscriptions: SubscriptionRepoDep,
    purchases: PurchaseRepoDep,
) -> PaymentReconciler:
    """Reconciler bound to the request's session."""
    return PaymentReconciler(subscriptions, purchases)


ReconcilerDep = Annotated[PaymentReconciler, Depends(get_payment_reconciler)]
StripeServiceDep = Annotated[StripeService, Depends(get_stripe_service)]
PayPalServiceDep = Annotated[PayPalService, Depends(get_paypal_service)]
CoinbaseServiceDep = Annotated[CoinbaseCommerceService, Depends(get_coinbase_service)]
StorageDep = Annotated[SupabaseStorage, Depends(get_storage)]


# =============================================================================
# Re-export DB dependencies for a single import source
# Routers should import from api.dependencies, not db.dependencies directly.
# =============================================================================
from app.infrastructure.db.dependencies import (  # noqa: E402, F401
    SessionDep,
    SubscriptionRepoDep,
    PurchaseRepoDep,
    ImageRepoDep,
    WebhookEventRepoDep,
)
