"""
Gallery Payments - FastAPI Application

Main entry point for the backend API.
Provides checkout, webhook and subscription endpoints for Stripe, PayPal and
Coinbase Commerce, plus the image gallery.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config.settings import settings
from app.infrastructure.exceptions import (
    GalleryError,
    PaymentProviderError,
    StorageError,
    WebhookVerificationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Gallery Payments backend starting in {settings.environment} mode...")

    if settings.database_url:
        from app.infrastructure.db.database import init_db
        await init_db()
        logger.info("Database connection pool initialized")
    else:
        logger.warning("DATABASE_URL not set; database connects lazily on first request")

    yield

    if settings.database_url:
        from app.infrastructure.db.database import close_db
        await close_db()
        logger.info("Database connection pool closed")

    logger.info("Gallery Payments backend shutting down...")


app = FastAPI(
    title="Gallery Payments",
    description="Payments, subscriptions and image licensing for the gallery",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(WebhookVerificationError)
async def webhook_verification_error_handler(request: Request, exc: WebhookVerificationError):
    """Handle untrusted webhook payloads."""
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(PaymentProviderError)
async def payment_provider_error_handler(request: Request, exc: PaymentProviderError):
    """Provider 4xx responses pass through; anything else is a bad gateway."""
    logger.error(f"Payment provider error ({exc.provider}): {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    """Handle object storage failures."""
    return JSONResponse(status_code=502, content=exc.to_dict())


@app.exception_handler(GalleryError)
async def general_error_handler(request: Request, exc: GalleryError):
    """Handle all other application errors."""
    logger.error(f"Unhandled application error: {exc.message}")
    return JSONResponse(status_code=500, content=exc.to_dict())


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "gallery-payments"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Gallery Payments API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from app.api.routes import stripe, paypal, crypto, webhooks, subscriptions, images, purchases

app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(stripe.router, prefix="/api", tags=["Stripe"])
app.include_router(paypal.router, prefix="/api", tags=["PayPal"])
app.include_router(crypto.router, prefix="/api", tags=["Crypto"])
app.include_router(subscriptions.router, prefix="/api", tags=["Subscriptions"])
app.include_router(images.router, prefix="/api", tags=["Images"])
app.include_router(purchases.router, prefix="/api", tags=["Purchases"])
