"""
cardwise: FSRS spaced-repetition scheduling core.

Decides when each card a user has rated must be reviewed again, builds
bounded review queues, drives review sessions and reports statistics.
"""

from .core.errors import (
    CardwiseError,
    ConcurrencyError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .fsrs import CardMemoryState, CardState, FSRSScheduler, Rating, SchedulerParameters
from .service import CardwiseService

__version__ = "1.0.0"

__all__ = [
    "CardMemoryState",
    "CardState",
    "CardwiseError",
    "CardwiseService",
    "ConcurrencyError",
    "FSRSScheduler",
    "NotFoundError",
    "PersistenceError",
    "Rating",
    "SchedulerParameters",
    "ValidationError",
]
