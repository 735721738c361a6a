# API Routes Module
from app.api.routes import (
    stripe,
    paypal,
    crypto,
    webhooks,
    subscriptions,
    images,
    purchases,
)

__all__ = [
    "stripe",
    "paypal",
    "crypto",
    "webhooks",
    "subscriptions",
    "images",
    "purchases",
]
