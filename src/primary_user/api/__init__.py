"""Microsoft Graph transport.

Classes:
    GraphClient: Async HTTP client with retry for reads and nextLink pagination
    TokenManager: OAuth2 client credentials token management

Exceptions:
    GraphSyncError: Base exception for all errors
    ConfigurationError: Missing or invalid configuration or input
    InputSchemaError: Device input file does not match the expected schema
    GroupNotFoundError: Requested directory group does not exist
    APIError: Graph request failures
    NetworkError: Network connectivity issues
"""
from .auth import CachedToken, TokenManager
from .client import (
    DEFAULT_GRAPH_BASE_URL,
    DEFAULT_PAGINATION,
    SIGN_INS_PAGINATION,
    GraphClient,
    PaginationConfig,
)
from .exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    GraphSyncError,
    GroupNotFoundError,
    InputSchemaError,
    InvalidCredentialsError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TimeoutError,
    TokenExpiredError,
    TokenFetchError,
    ValidationError,
)

__all__ = [
    # Client
    "GraphClient",
    "PaginationConfig",
    "DEFAULT_GRAPH_BASE_URL",
    "DEFAULT_PAGINATION",
    "SIGN_INS_PAGINATION",
    # Auth
    "TokenManager",
    "CachedToken",
    # Exceptions
    "GraphSyncError",
    "ConfigurationError",
    "InputSchemaError",
    "GroupNotFoundError",
    "AuthenticationError",
    "TokenFetchError",
    "TokenExpiredError",
    "InvalidCredentialsError",
    "APIError",
    "RateLimitError",
    "NotFoundError",
    "ValidationError",
    "ServerError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
]
