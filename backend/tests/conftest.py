"""
Test configuration and fixtures for the Gallery backend.

Provides shared fixtures for unit and integration tests.
"""

import os
import time

# Settings are read at import time; give the app a complete test environment.
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-at-least-thirty-two-bytes")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("APP_URL", "http://localhost:3000")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_123")
os.environ.setdefault("STRIPE_STANDARD_MONTHLY_PRICE_ID", "price_standard_monthly")
os.environ.setdefault("STRIPE_STANDARD_YEARLY_PRICE_ID", "price_standard_yearly")
os.environ.setdefault("STRIPE_PREMIUM_MONTHLY_PRICE_ID", "price_premium_monthly")
os.environ.setdefault("STRIPE_PREMIUM_YEARLY_PRICE_ID", "price_premium_yearly")
os.environ.setdefault("STRIPE_COMMERCIAL_MONTHLY_PRICE_ID", "price_commercial_monthly")
os.environ.setdefault("STRIPE_COMMERCIAL_YEARLY_PRICE_ID", "price_commercial_yearly")

from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

import app.infrastructure.db.models  # noqa: F401  registers tables
from app.domain.image import DownloadStats
from app.infrastructure.db.database import build_engine, build_session_factory


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """Get the FastAPI application."""
    from app.main import app
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def no_jwks_network():
    """JWKS lookups never leave the process; tokens verify through HS256."""
    jwks_client = MagicMock()
    jwks_client.get_signing_key_from_jwt.side_effect = jwt.exceptions.PyJWKClientError(
        "JWKS disabled in tests"
    )
    with patch("app.api.dependencies._get_jwks_client", return_value=jwks_client):
        yield


# =============================================================================
# Auth Fixtures
# =============================================================================

@pytest.fixture
def mock_user_id() -> str:
    return "6f1c2a3e-4b5d-4e6f-8a9b-0c1d2e3f4a5b"


def make_token(user_id: str, expires_in: int = 3600, **claims) -> str:
    """HS256 Supabase-style access token signed with the test secret."""
    from app.config.settings import get_settings

    settings = get_settings()
    payload = {
        "sub": user_id,
        "aud": "authenticated",
        "iss": f"{settings.supabase_url}/auth/v1",
        "exp": int(time.time()) + expires_in,
        **claims,
    }
    return jwt.encode(payload, settings.supabase_jwt_secret, algorithm="HS256")


@pytest.fixture
def auth_headers(mock_user_id) -> dict:
    return {"Authorization": f"Bearer {make_token(mock_user_id, email='buyer@example.com')}"}


# =============================================================================
# Mock Fixtures
# =============================================================================

@pytest.fixture
def mock_reconciler():
    """Mock for PaymentReconciler."""
    mock = MagicMock()
    mock.reconcile = AsyncMock()
    return mock


@pytest.fixture
def mock_ledger():
    """Mock for WebhookEventRepository."""
    mock = MagicMock()
    mock.is_processed = AsyncMock(return_value=False)
    mock.mark_processed = AsyncMock()
    return mock


@pytest.fixture
def mock_subscription_repo():
    mock = MagicMock()
    mock.get_by_user_id = AsyncMock(return_value=None)
    mock.get_by_external_id = AsyncMock(return_value=None)
    mock.update_fields = AsyncMock()
    return mock


@pytest.fixture
def mock_purchase_repo():
    mock = MagicMock()
    mock.list_for_user = AsyncMock(return_value=[])
    mock.has_purchased = AsyncMock(return_value=False)
    mock.get_by_provider_key = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def mock_image_repo():
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.list_page = AsyncMock(return_value=([], 0))
    mock.create = AsyncMock()
    mock.record_download = AsyncMock()
    mock.download_stats = AsyncMock(return_value=DownloadStats())
    return mock


@pytest.fixture
def override_repositories(app, mock_reconciler, mock_ledger, mock_subscription_repo, mock_purchase_repo, mock_image_repo):
    """Replace every database-backed dependency with mocks."""
    from app.api.dependencies import get_payment_reconciler
    from app.infrastructure.db.dependencies import (
        get_image_repository,
        get_purchase_repository,
        get_subscription_repository,
        get_webhook_event_repository,
    )

    app.dependency_overrides[get_payment_reconciler] = lambda: mock_reconciler
    app.dependency_overrides[get_webhook_event_repository] = lambda: mock_ledger
    app.dependency_overrides[get_subscription_repository] = lambda: mock_subscription_repo
    app.dependency_overrides[get_purchase_repository] = lambda: mock_purchase_repo
    app.dependency_overrides[get_image_repository] = lambda: mock_image_repo
    return app.dependency_overrides


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory SQLite database per test."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    session_factory = build_session_factory(engine)
    async with session_factory() as session:
        yield session

    await engine.dispose()


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def image_id() -> str:
    return "0b7e7c9a-1d2f-4a3b-9c8d-7e6f5a4b3c2d"


@pytest.fixture
def sample_image(image_id):
    from app.domain.image import Image

    return Image(
        id=image_id,
        storage_path="public/abc.jpg",
        storage_url="https://test-project.supabase.co/storage/v1/object/public/images/public/abc.jpg",
        original_name="sunset.jpg",
        mime_type="image/jpeg",
        size_bytes=1024,
    )
