"""Error kinds raised by the pricing, booking and settlement services.

Validation and configuration errors are surfaced to the caller and never
retried automatically. Concurrency conflicts are safe to retry from a fresh
read. Insufficient funds leave every affected record untouched.
"""
from __future__ import annotations

from typing import Any


class SharePoolError(Exception):
    """Base error for all share pool domain errors."""

    def __init__(self, message: str, **details: Any) -> None:
        self.message = message
        self.details: dict[str, Any] = details
        super().__init__(self.message)


class ValidationError(SharePoolError):
    """Bad input shape or range, rejected before any write."""


class NotFoundError(ValidationError):
    """The referenced instrument, booking, order or wallet does not exist."""

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} not found: {entity_id}", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransitionError(ValidationError):
    """A status change that the entity's state machine does not allow."""

    def __init__(self, entity: str, current: str, target: str) -> None:
        super().__init__(
            f"{entity} cannot move from '{current}' to '{target}'",
            entity=entity,
            current=current,
            target=target,
        )
        self.current = current
        self.target = target


class InsufficientFundsError(SharePoolError):
    """A fund debit would overdraw the wallet."""

    def __init__(self, required: object, available: object, **details: Any) -> None:
        super().__init__(
            f"Insufficient funds: required {required}, available {available}",
            required=str(required),
            available=str(available),
            **details,
        )
        self.required = required
        self.available = available


class ConcurrencyConflictError(SharePoolError):
    """A stale read was detected on write, or a serializing lock timed out."""


class ConfigurationError(SharePoolError):
    """Admin-set bounds are mutually inconsistent or out of range."""
