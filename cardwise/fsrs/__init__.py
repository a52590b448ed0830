"""
FSRS scheduling core.

Components:
- CardMemoryState: per-card, per-user memory record
- SchedulerParameters: pinned, versioned weights and step configuration
- FSRSScheduler: pure (state, rating, now) -> state function
"""

from .memory import CardMemoryState, CardState, Rating, ReviewLogEntry, SessionSummary
from .parameters import FSRS_V4_WEIGHTS, PARAMETER_SETS, SchedulerParameters
from .scheduler import FSRSScheduler, fuzz_range

__all__ = [
    # Memory model
    "CardMemoryState",
    "CardState",
    "Rating",
    "ReviewLogEntry",
    "SessionSummary",
    # Parameters
    "FSRS_V4_WEIGHTS",
    "PARAMETER_SETS",
    "SchedulerParameters",
    # Scheduling
    "FSRSScheduler",
    "fuzz_range",
]
