"""
Error taxonomy for the scheduling core.

- ValidationError: malformed rating, negative elapsed time, bad config
- NotFoundError: unknown card or session reference
- PersistenceError: storage I/O failure (retried once by callers)
- ConcurrencyError: stale write detected on upsert (never retried)
"""

from __future__ import annotations


class CardwiseError(Exception):
    """Base class for all errors raised by cardwise."""

    def __init__(
        self,
        message: str,
        *,
        card_id: str | None = None,
        user_id: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.card_id = card_id
        self.user_id = user_id

    def __str__(self) -> str:
        context = []
        if self.card_id is not None:
            context.append(f"card={self.card_id}")
        if self.user_id is not None:
            context.append(f"user={self.user_id}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class ValidationError(CardwiseError):
    """Raised before any state mutation when an input is malformed."""
    pass


class NotFoundError(CardwiseError):
    """Raised when a card or session reference does not exist."""
    pass


class PersistenceError(CardwiseError):
    """Raised when the backing store fails to read or write."""
    pass


class ConcurrencyError(CardwiseError):
    """Raised when an upsert carries a stale version."""

    def __init__(
        self,
        message: str,
        *,
        card_id: str | None = None,
        user_id: str | None = None,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        super().__init__(message, card_id=card_id, user_id=user_id)
        self.expected_version = expected_version
        self.actual_version = actual_version
