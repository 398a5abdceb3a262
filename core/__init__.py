"""
Core utilities and configuration for the property sync service.

Modules:
    config: Application configuration and environment variable management
    database: Database engine and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import get_db_session
    from core.exceptions import RateLimitError, ClientRequestError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "get_db_session",
    "setup_logging",
    # Exceptions
    "SyncException",
    "ConfigurationError",
    "APIClientError",
    "RateLimitError",
    "ServerError",
    "NetworkError",
    "ClientRequestError",
    "AuthenticationError",
    "IngestionError",
    "ResourceFetchError",
    "UnknownResourceError",
    "InvalidStateTransition",
    "SyncCancelledError",
    "RetryableError",
    "NonRetryableError",
]
