"""Shared building blocks: logging setup and the error taxonomy."""

from .exceptions import (
    AuthError,
    CallRelayError,
    ErrorCode,
    ForwardError,
    InvalidStateError,
    NotFoundError,
    ProviderAuthError,
    ProviderConflictError,
    ProviderError,
    ProviderRateLimitError,
    StorageError,
    ValidationError,
)
from .logging import configure_logging

__all__ = [
    "AuthError",
    "CallRelayError",
    "ErrorCode",
    "ForwardError",
    "InvalidStateError",
    "NotFoundError",
    "ProviderAuthError",
    "ProviderConflictError",
    "ProviderError",
    "ProviderRateLimitError",
    "StorageError",
    "ValidationError",
    "configure_logging",
]
