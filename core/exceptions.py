"""
Custom exceptions for the market sync engine with structured error context.

Every exception carries a context dictionary so failures can be logged and
recorded against a market without losing the details of what was being
fetched or written at the time.

Exception Hierarchy:
    SyncException (base)
    ├── FatalConfigurationError
    ├── FetchError
    │   ├── TransientFetchError
    │   │   ├── AuthenticationError
    │   │   └── RateLimitError
    │   └── MalformedResponseError
    ├── PersistenceError
    │   ├── PersistenceConflict
    │   └── UpsertError
    └── CheckpointError
"""

from typing import Optional, Dict, Any
from datetime import datetime


class SyncException(Exception):
    """
    Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (market, page, batch, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Configuration Errors
# ============================================================================

class FatalConfigurationError(SyncException):
    """
    Raised before any market is touched when the run cannot start at all.

    Context should include:
        - missing: Names of the missing settings
        - unknown_markets: Requested market ids that are not configured
    """
    pass


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(SyncException):
    """Base exception for provider communication failures."""
    pass


class TransientFetchError(FetchError):
    """
    Network or HTTP failure while talking to the provider.

    Aborts the remaining work for the current market only.

    Context should include:
        - url: The endpoint that failed
        - status_code: HTTP status code (if applicable)
        - response_body: Response body (truncated)
    """
    pass


class AuthenticationError(TransientFetchError):
    """Provider rejected the credentials (HTTP 401, 403)."""
    pass


class RateLimitError(TransientFetchError):
    """Provider throttled the request (HTTP 429)."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class MalformedResponseError(FetchError):
    """
    Provider answered with a payload of unexpected shape.

    The affected batch is skipped; the market run continues.

    Context should include:
        - url: The endpoint that was called
        - batch_number: Index of the detail batch (if applicable)
        - response_type: Python type of the decoded body
    """
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class PersistenceError(SyncException):
    """Base exception for storage failures."""
    pass


class PersistenceConflict(PersistenceError):
    """
    Duplicate-key race on insert.

    Callers re-query and treat the pre-existing row as authoritative.

    Context should include:
        - table_name: Table the insert targeted
        - key: The conflicting natural key
    """
    pass


class UpsertError(PersistenceError):
    """
    Exception raised when a single record could not be written.

    Context should include:
        - external_property_id: Provider id of the property being upserted
        - address: The deduplicated address key
    """
    pass


# ============================================================================
# Checkpoint Errors
# ============================================================================

class CheckpointError(SyncException):
    """
    Exception raised when checkpoint management fails.

    Context should include:
        - market_id: The market whose checkpoint failed
        - watermark: The watermark value being written
        - operation: Operation that failed (load, advance)
    """
    pass
