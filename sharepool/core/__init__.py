"""Core utilities shared across the share pool service."""

from .config import Settings, get_settings  # noqa: F401
from .errors import (  # noqa: F401
    ConcurrencyConflictError,
    ConfigurationError,
    InsufficientFundsError,
    InvalidTransitionError,
    NotFoundError,
    SharePoolError,
    ValidationError,
)
from .logger import get_logger  # noqa: F401

__all__ = [
    "ConcurrencyConflictError",
    "ConfigurationError",
    "InsufficientFundsError",
    "InvalidTransitionError",
    "NotFoundError",
    "SharePoolError",
    "Settings",
    "ValidationError",
    "get_logger",
    "get_settings",
]
