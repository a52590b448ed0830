"""
Card memory model.

One CardMemoryState exists per (card, user) pair once the card has been
rated at least once. The record is only ever replaced by the scheduler;
callers never mutate it in place.

Rating scale (persisted as its ordinal):
1 - Again: forgot the card
2 - Hard: recalled with serious difficulty
3 - Good: recalled after some hesitation
4 - Easy: perfect recall
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any

from cardwise.core.errors import ValidationError
from cardwise.fsrs.parameters import MAX_DIFFICULTY, MIN_DIFFICULTY

SECONDS_PER_DAY = 86400.0

# Forgetting curve constants for R(t) = (1 + FACTOR * t / S) ^ DECAY
DECAY = -1.0
FACTOR = 1.0 / 9.0


# =============================================================================
# Enums
# =============================================================================


class Rating(IntEnum):
    """User feedback for a single review."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @property
    def is_correct(self) -> bool:
        """Good and Easy count as correct answers in statistics."""
        return self in (Rating.GOOD, Rating.EASY)

    @classmethod
    def parse(cls, value: Any) -> Rating:
        """
        Coerce an int, name or Rating into a Rating.

        Raises:
            ValidationError: If the value does not name one of the four ratings
        """
        if isinstance(value, Rating):
            return value
        if isinstance(value, bool):
            raise ValidationError(f"Invalid rating: {value!r}")
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise ValidationError(f"Invalid rating: {value!r}") from None
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls.parse(int(text))
            try:
                return cls[text.upper()]
            except KeyError:
                raise ValidationError(f"Invalid rating: {value!r}") from None
        raise ValidationError(f"Invalid rating: {value!r}")


class CardState(str, Enum):
    """Lifecycle state of a card for one user."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


# =============================================================================
# Time helpers
# =============================================================================


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def require_aware(value: datetime, name: str = "timestamp") -> datetime:
    """Reject naive datetimes; comparisons across zones would be ambiguous."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValidationError(f"{name} must be timezone-aware, got {value!r}")
    return value


def elapsed_days_between(earlier: datetime | None, later: datetime) -> float:
    """Fractional days from earlier to later (0.0 when earlier is unset)."""
    if earlier is None:
        return 0.0
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


def forgetting_curve(elapsed_days: float, stability: float) -> float:
    """Probability of recall after elapsed_days for a memory of given stability."""
    return (1.0 + FACTOR * elapsed_days / stability) ** DECAY


def _parse_dt(value: Any, name: str) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} is not an ISO-8601 timestamp: {value!r}") from e


# =============================================================================
# CardMemoryState
# =============================================================================


@dataclass(frozen=True)
class CardMemoryState:
    """Per-card, per-user scheduling record."""

    card_id: str
    user_id: str
    due: datetime
    stability: float = 0.1
    difficulty: float = 5.0
    elapsed_days: int = 0
    scheduled_days: int = 0
    reps: int = 0
    lapses: int = 0
    state: CardState = CardState.NEW
    last_review: datetime | None = None
    total_reviews: int = 0
    total_correct: int = 0
    step: int = 0  # Index into learning/relearning steps
    version: int = 0  # Bumped by the store on every write

    def __post_init__(self) -> None:
        context = {"card_id": self.card_id, "user_id": self.user_id}
        require_aware(self.due, "due")
        if self.last_review is not None:
            require_aware(self.last_review, "last_review")
            if self.due < self.last_review:
                raise ValidationError("due precedes last_review", **context)
        if not self.stability > 0:
            raise ValidationError(f"stability must be > 0, got {self.stability}", **context)
        if not MIN_DIFFICULTY <= self.difficulty <= MAX_DIFFICULTY:
            raise ValidationError(
                f"difficulty must be within [{MIN_DIFFICULTY:g}, {MAX_DIFFICULTY:g}], "
                f"got {self.difficulty}",
                **context,
            )
        counters = ("elapsed_days", "scheduled_days", "reps", "lapses", "total_reviews",
                    "total_correct", "step", "version")
        for name in counters:
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} must be >= 0", **context)
        if self.lapses > self.reps:
            raise ValidationError(
                f"lapses ({self.lapses}) cannot exceed reps ({self.reps})", **context
            )

    @classmethod
    def new(cls, card_id: str, user_id: str, now: datetime) -> CardMemoryState:
        """Default record for a card that has never been rated."""
        if not card_id:
            raise ValidationError("card_id is required")
        if not user_id:
            raise ValidationError("user_id is required")
        return cls(card_id=card_id, user_id=user_id, due=require_aware(now, "now"))

    @property
    def key(self) -> tuple[str, str]:
        """Composite identity (card_id, user_id)."""
        return (self.card_id, self.user_id)

    @property
    def is_new(self) -> bool:
        return self.state == CardState.NEW

    def is_due(self, now: datetime) -> bool:
        """Check if this card is eligible for review at `now`."""
        return self.due <= now

    def days_overdue(self, now: datetime) -> int:
        """Whole days past the due instant (0 when not yet due)."""
        if self.due > now:
            return 0
        return int((now - self.due).total_seconds() // SECONDS_PER_DAY)

    def retrievability(self, now: datetime) -> float:
        """
        Modeled recall probability at `now`.

        Returns 1.0 for cards that have never been reviewed.
        """
        if self.last_review is None or self.state == CardState.NEW:
            return 1.0
        elapsed = max(0.0, elapsed_days_between(self.last_review, now))
        return forgetting_curve(elapsed, self.stability)

    def with_version(self, version: int) -> CardMemoryState:
        """Copy of this record carrying a different store version."""
        return replace(self, version=version)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-safe primitives."""
        return {
            "card_id": self.card_id,
            "user_id": self.user_id,
            "due": self.due.isoformat(),
            "stability": self.stability,
            "difficulty": self.difficulty,
            "elapsed_days": self.elapsed_days,
            "scheduled_days": self.scheduled_days,
            "reps": self.reps,
            "lapses": self.lapses,
            "state": self.state.value,
            "last_review": self.last_review.isoformat() if self.last_review else None,
            "total_reviews": self.total_reviews,
            "total_correct": self.total_correct,
            "step": self.step,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CardMemoryState:
        """
        Rebuild a record from `to_dict` output.

        Raises:
            ValidationError: On a missing identity or unknown state value
        """
        known = {f.name for f in fields(cls)}
        missing = {"card_id", "user_id", "due"} - data.keys()
        if missing:
            raise ValidationError(f"Missing fields: {sorted(missing)}")

        values = {k: v for k, v in data.items() if k in known}
        try:
            values["state"] = CardState(values.get("state", CardState.NEW.value))
        except ValueError:
            raise ValidationError(f"Unknown card state: {data.get('state')!r}") from None
        values["due"] = _parse_dt(values["due"], "due")
        values["last_review"] = _parse_dt(values.get("last_review"), "last_review")
        return cls(**values)


# =============================================================================
# Review log
# =============================================================================


@dataclass(frozen=True)
class ReviewLogEntry:
    """A single applied rating, kept for analytics."""

    card_id: str
    user_id: str
    rating: Rating
    state_before: CardState
    reviewed_at: datetime
    elapsed_days: int = 0
    scheduled_days: int = 0
    stability: float = 0.0
    difficulty: float = 0.0

    @classmethod
    def from_transition(
        cls,
        before: CardMemoryState,
        after: CardMemoryState,
        rating: Rating,
    ) -> ReviewLogEntry:
        return cls(
            card_id=after.card_id,
            user_id=after.user_id,
            rating=rating,
            state_before=before.state,
            reviewed_at=after.last_review or after.due,
            elapsed_days=after.elapsed_days,
            scheduled_days=after.scheduled_days,
            stability=after.stability,
            difficulty=after.difficulty,
        )


@dataclass
class SessionSummary:
    """Persisted record of a finished review session."""

    session_id: str
    user_id: str
    started_at: datetime
    ended_at: datetime
    cards_reviewed: int = 0
    cards_correct: int = 0
    cards_again: int = 0
    session_type: str = "flashcard_review"
    by_rating: dict[int, int] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> int:
        return max(0, int((self.ended_at - self.started_at).total_seconds()))

    @property
    def accuracy(self) -> float:
        """Fraction of reviewed cards answered Good or Easy."""
        if self.cards_reviewed == 0:
            return 0.0
        return self.cards_correct / self.cards_reviewed
