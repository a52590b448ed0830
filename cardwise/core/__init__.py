from .errors import (
    CardwiseError,
    ConcurrencyError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

__all__ = [
    "CardwiseError",
    "ConcurrencyError",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
]
