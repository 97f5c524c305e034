"""
Consolidated DropshipHub Exception Hierarchy

Every failure that leaves the provider integration layer is one of the classes
below. Provider-originated errors record which provider produced them, the
failure kind used by the retry layer, and the provider's original status/code.

Architecture:
- Base exception classes for common error types
- Provider exceptions that carry provider name, failure kind and remote status
- Helpers for retry decisions, logging and user-visible messages
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional, List

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    """Failure classification used by the resilience layer"""

    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    ORDER_CREATION_FAILED = "order_creation_failed"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


# =============================================================================
# Base Exception Classes
# =============================================================================


class DropshipHubException(Exception):
    """Base exception for all DropshipHub-related errors."""

    kind: FailureKind = FailureKind.PERMANENT

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {"error_code": self.error_code, "kind": self.kind.value, "message": self.message, "details": self.details}


class ValidationError(DropshipHubException):
    """Raised when input validation fails."""

    kind = FailureKind.VALIDATION

    def __init__(
        self, message: str, field_errors: Optional[Dict[str, str]] = None, missing_fields: Optional[List[str]] = None
    ):
        super().__init__(message, error_code="VALIDATION_ERROR")
        self.field_errors = field_errors or {}
        self.missing_fields = missing_fields or []

        if field_errors or missing_fields:
            self.details.update({"field_errors": self.field_errors, "missing_fields": self.missing_fields})


class ConfigurationError(DropshipHubException):
    """Raised when configuration is invalid or missing."""

    kind = FailureKind.CONFIGURATION

    def __init__(self, message: str, config_field: Optional[str] = None, provider_name: Optional[str] = None):
        super().__init__(message, error_code="CONFIGURATION_ERROR")
        self.config_field = config_field
        self.provider_name = provider_name

        if config_field:
            self.details["config_field"] = config_field
        if provider_name:
            self.details["provider_name"] = provider_name


# =============================================================================
# Registry Exceptions
# =============================================================================


class ProviderNotConfiguredError(ConfigurationError):
    """Raised when no provider name was given and no default provider exists."""

    def __init__(self, message: str = "No dropshipping provider configured"):
        super().__init__(message)


class ProviderNotRegisteredError(ConfigurationError):
    """Raised when the requested provider is not in the registry."""

    def __init__(self, provider_name: str):
        super().__init__(f"Dropshipping provider '{provider_name}' not found", provider_name=provider_name)


class ProviderDisabledError(ConfigurationError):
    """Raised when the requested provider is registered but disabled."""

    def __init__(self, provider_name: str):
        super().__init__(
            f"Dropshipping provider '{provider_name}' is configured but disabled", provider_name=provider_name
        )


# =============================================================================
# Provider Exceptions
# =============================================================================


class ProviderError(DropshipHubException):
    """Base exception for failures reported by (or while talking to) a provider."""

    kind = FailureKind.PERMANENT

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        remote_status: Optional[Any] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details, error_code=error_code or "PROVIDER_ERROR")
        self.provider_name = provider_name
        self.remote_status = remote_status

        self.details.update({"provider_name": provider_name, "kind": self.kind.value, "remote_status": remote_status})


class ProviderAuthenticationError(ProviderError):
    """Raised when a provider rejects or is missing credentials."""

    kind = FailureKind.UNAUTHORIZED

    def __init__(self, message: str, provider_name: Optional[str] = None, remote_status: Optional[Any] = None):
        super().__init__(message, provider_name=provider_name, remote_status=remote_status,
                         error_code="PROVIDER_UNAUTHORIZED")


class ProviderConnectionError(ProviderError):
    """Raised on network failures, timeouts and 5xx-class responses."""

    kind = FailureKind.TRANSIENT

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        remote_status: Optional[Any] = None,
        endpoint: Optional[str] = None,
    ):
        super().__init__(message, provider_name=provider_name, remote_status=remote_status,
                         error_code="CONNECTION_ERROR")
        self.endpoint = endpoint

        if endpoint:
            self.details["endpoint"] = endpoint


class ProviderRateLimitError(ProviderError):
    """Raised when a provider rate limit is exceeded."""

    kind = FailureKind.RATE_LIMITED

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        retry_after: Optional[float] = None,
        remote_status: Optional[Any] = 429,
    ):
        super().__init__(message, provider_name=provider_name, remote_status=remote_status,
                         error_code="RATE_LIMIT_ERROR")
        self.retry_after = retry_after
        self.details["retry_after"] = retry_after


class ProviderNotFoundError(ProviderError):
    """Raised when a product or order does not exist at the provider."""

    kind = FailureKind.NOT_FOUND

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        remote_status: Optional[Any] = 404,
    ):
        super().__init__(message, provider_name=provider_name, remote_status=remote_status,
                         error_code="RESOURCE_NOT_FOUND")
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.details.update({"resource_type": resource_type, "resource_id": resource_id})


class OrderCreationError(ProviderError):
    """Raised when a provider rejects order creation."""

    kind = FailureKind.ORDER_CREATION_FAILED

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        remote_status: Optional[Any] = None,
        raw_error: Optional[Any] = None,
    ):
        super().__init__(message, provider_name=provider_name, remote_status=remote_status,
                         error_code="ORDER_CREATION_FAILED")
        self.raw_error = raw_error
        self.details["raw_error"] = raw_error


# =============================================================================
# Retry and Presentation Helpers
# =============================================================================

RETRYABLE_KINDS = frozenset({
    FailureKind.RATE_LIMITED,
    FailureKind.TRANSIENT,
    FailureKind.ORDER_CREATION_FAILED,
})

USER_MESSAGES = {
    FailureKind.VALIDATION: "The request is invalid",
    FailureKind.CONFIGURATION: "Provider unavailable",
    FailureKind.UNAUTHORIZED: "Provider unavailable",
    FailureKind.RATE_LIMITED: "Try again shortly",
    FailureKind.NOT_FOUND: "Item/order not found",
    FailureKind.ORDER_CREATION_FAILED: "We could not place your order. Please try again later",
    FailureKind.TRANSIENT: "Service temporarily unavailable",
    FailureKind.PERMANENT: "Provider request failed",
}


def failure_kind(exception: Exception) -> FailureKind:
    """Classify any exception; unknown exceptions are permanent."""
    if isinstance(exception, DropshipHubException):
        return exception.kind
    return FailureKind.PERMANENT


def is_retryable(exception: Exception) -> bool:
    """Whether the resilience layer may retry after this failure."""
    return failure_kind(exception) in RETRYABLE_KINDS


def get_user_message(exception: Exception) -> str:
    """
    Get the user-visible message for an exception.

    Raw provider payloads and credentials are never part of the message.
    """
    return USER_MESSAGES[failure_kind(exception)]


def log_exception(exception: Exception, context: str = None, extra_info: Optional[Dict[str, Any]] = None):
    """
    Centralized exception logging with consistent format.

    Args:
        exception: The exception to log
        context: Additional context about where the exception occurred
        extra_info: Additional information to include in the log
    """
    if isinstance(exception, DropshipHubException):
        log_data = {
            "error_code": exception.error_code,
            "error_kind": exception.kind.value,
            "error_message": exception.message,  # LogRecord reserves "message"
            "details": exception.details,
            "context": context,
        }

        if extra_info:
            log_data.update(extra_info)

        logger.error(f"DropshipHub Error: {exception.message}", extra=log_data)
    else:
        log_data = {
            "exception_type": type(exception).__name__,
            "error_message": str(exception),
            "context": context,
        }

        if extra_info:
            log_data.update(extra_info)

        logger.error(f"Unexpected Error: {str(exception)}", extra=log_data)
