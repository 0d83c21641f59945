"""
Core utilities and configuration for the market sync engine.

Modules:
    config: Application settings and market definitions
    database: Async engine and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import get_session
    from core.exceptions import TransientFetchError, FatalConfigurationError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "get_session",
    "setup_logging",
    # Exceptions
    "SyncException",
    "FatalConfigurationError",
    "FetchError",
    "TransientFetchError",
    "AuthenticationError",
    "RateLimitError",
    "MalformedResponseError",
    "PersistenceError",
    "PersistenceConflict",
    "UpsertError",
    "CheckpointError",
]
