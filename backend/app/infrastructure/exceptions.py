"""
Custom Exceptions for the Gallery backend

Hierarchical exception classes for proper error handling across layers.
"""

from typing import Optional, Dict, Any


class GalleryError(Exception):
    """Base exception for all Gallery backend errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class PaymentProviderError(GalleryError):
    """Raised when a payment provider API call fails."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
        payload: Optional[Any] = None,
    ):
        details: Dict[str, Any] = {}
        if provider:
            details["provider"] = provider
        if status_code:
            details["status_code"] = status_code
        if payload is not None:
            details["response"] = payload
        super().__init__(message, details, original_error)
        self.provider = provider
        self.status_code = status_code

    @property
    def http_status(self) -> int:
        """Status to surface to the route caller: provider 4xx pass through, the rest is 502."""
        if self.status_code and 400 <= self.status_code < 500:
            return self.status_code
        return 502


class WebhookVerificationError(GalleryError):
    """Raised when a webhook payload or signature cannot be trusted."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {"provider": provider} if provider else {}
        super().__init__(message, details, original_error)


class StorageError(GalleryError):
    """Raised when object storage operations fail."""
    pass


class ConfigurationError(GalleryError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
