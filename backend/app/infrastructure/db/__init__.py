"""
Database Infrastructure Package for the Gallery backend

Exports database utilities and repository dependencies.
"""

from app.infrastructure.db.database import (
    DatabaseManager,
    get_db_manager,
    get_session,
    init_db,
    close_db,
)

from app.infrastructure.db.dependencies import (
    SessionDep,
    get_subscription_repository,
    get_purchase_repository,
    get_image_repository,
    get_webhook_event_repository,
    SubscriptionRepoDep,
    PurchaseRepoDep,
    ImageRepoDep,
    WebhookEventRepoDep,
)


__all__ = [
    # Database management
    "DatabaseManager",
    "get_db_manager",
    "get_session",
    "init_db",
    "close_db",
    # Dependencies
    "SessionDep",
    "get_subscription_repository",
    "get_purchase_repository",
    "get_image_repository",
    "get_webhook_event_repository",
    "SubscriptionRepoDep",
    "PurchaseRepoDep",
    "ImageRepoDep",
    "WebhookEventRepoDep",
]
