"""
Read-only learning statistics.

Everything here is derived from persisted memory states, review logs and
session summaries. Nothing is written, and empty data sets produce zeroed
results rather than errors.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from cardwise.db.store import CardStore
from cardwise.delivery.content import ContentProvider
from cardwise.delivery.queue_builder import end_of_day
from cardwise.fsrs.memory import (
    CardMemoryState,
    CardState,
    SessionSummary,
    require_aware,
    utcnow,
)

DEFAULT_MATURE_THRESHOLD_DAYS = 21.0

# Difficulty bucket upper bounds (exclusive)
EASY_DIFFICULTY_BELOW = 5.0
MEDIUM_DIFFICULTY_BELOW = 7.0

# =============================================================================
# Result types
# =============================================================================


@dataclass(frozen=True)
class MaturityStats:
    """Card counts by state; review cards also split young / mature."""

    new: int = 0
    learning: int = 0
    review: int = 0
    relearning: int = 0
    young: int = 0
    mature: int = 0

    @property
    def total(self) -> int:
        return self.new + self.learning + self.review + self.relearning


@dataclass(frozen=True)
class DueForecast:
    """When scheduled cards fall due, relative to now."""

    overdue: int = 0
    today: int = 0  # includes overdue
    this_week: int = 0  # the 6 days after today
    beyond: int = 0


@dataclass(frozen=True)
class AccuracyBucket:
    reviews: int = 0
    correct: int = 0

    @property
    def rate(self) -> float:
        return self.correct / self.reviews if self.reviews else 0.0


@dataclass(frozen=True)
class StudyTimeStats:
    today_seconds: int = 0
    week_seconds: int = 0
    total_seconds: int = 0
    sessions: int = 0

    @property
    def average_session_seconds(self) -> float:
        return self.total_seconds / self.sessions if self.sessions else 0.0


@dataclass(frozen=True)
class UserStats:
    retention_rate: float = 0.0
    maturity: MaturityStats = field(default_factory=MaturityStats)
    due_forecast: DueForecast = field(default_factory=DueForecast)
    accuracy_by_difficulty: dict[str, AccuracyBucket] = field(default_factory=dict)
    study_time: StudyTimeStats = field(default_factory=StudyTimeStats)
    streak_days: int = 0
    reviews_today: int = 0
    correct_today: int = 0


# =============================================================================
# Pure aggregations
# =============================================================================


def retention_rate(states: Iterable[CardMemoryState]) -> float:
    """Sum of correct answers over sum of reviews (0.0 when nothing was reviewed)."""
    total_reviews = 0
    total_correct = 0
    for state in states:
        total_reviews += state.total_reviews
        total_correct += state.total_correct
    if total_reviews == 0:
        return 0.0
    return total_correct / total_reviews


def maturity(
    states: Iterable[CardMemoryState],
    mature_threshold_days: float = DEFAULT_MATURE_THRESHOLD_DAYS,
    unseen: int = 0,
) -> MaturityStats:
    """
    Bucket cards by state.

    Args:
        states: Persisted memory states
        mature_threshold_days: Review cards at or above this stability are mature
        unseen: Cards with no persisted state, counted as new
    """
    counts = {s: 0 for s in CardState}
    young = mature = 0
    for state in states:
        counts[state.state] += 1
        if state.state == CardState.REVIEW:
            if state.stability >= mature_threshold_days:
                mature += 1
            else:
                young += 1

    return MaturityStats(
        new=counts[CardState.NEW] + unseen,
        learning=counts[CardState.LEARNING],
        review=counts[CardState.REVIEW],
        relearning=counts[CardState.RELEARNING],
        young=young,
        mature=mature,
    )


def due_forecast(states: Iterable[CardMemoryState], now: datetime) -> DueForecast:
    """Count scheduled cards due today (incl. overdue), within the week, and later."""
    require_aware(now, "now")
    today_end = end_of_day(now)
    week_end = today_end + timedelta(days=6)

    overdue = today = this_week = beyond = 0
    for state in states:
        if state.state == CardState.NEW:
            continue
        if state.due <= now:
            overdue += 1
        if state.due <= today_end:
            today += 1
        elif state.due <= week_end:
            this_week += 1
        else:
            beyond += 1

    return DueForecast(overdue=overdue, today=today, this_week=this_week, beyond=beyond)


def accuracy_by_difficulty(states: Iterable[CardMemoryState]) -> dict[str, AccuracyBucket]:
    """Accuracy for easy (<5), medium (<7) and hard cards."""
    totals = {"easy": [0, 0], "medium": [0, 0], "hard": [0, 0]}
    for state in states:
        if state.total_reviews == 0:
            continue
        if state.difficulty < EASY_DIFFICULTY_BELOW:
            bucket = "easy"
        elif state.difficulty < MEDIUM_DIFFICULTY_BELOW:
            bucket = "medium"
        else:
            bucket = "hard"
        totals[bucket][0] += state.total_reviews
        totals[bucket][1] += state.total_correct

    return {
        name: AccuracyBucket(reviews=reviews, correct=correct)
        for name, (reviews, correct) in totals.items()
    }


def study_time(summaries: Iterable[SessionSummary], now: datetime) -> StudyTimeStats:
    """Time spent in sessions started today, in the last 7 days, and overall."""
    day_start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    week_start = day_start - timedelta(days=6)

    today = week = total = count = 0
    for summary in summaries:
        seconds = summary.duration_seconds
        total += seconds
        count += 1
        if summary.started_at >= week_start:
            week += seconds
        if summary.started_at >= day_start:
            today += seconds

    return StudyTimeStats(
        today_seconds=today, week_seconds=week, total_seconds=total, sessions=count
    )


def streak(summaries: Iterable[SessionSummary], now: datetime) -> int:
    """
    Consecutive study days ending today.

    A streak that ended yesterday still counts until today is over.
    """
    days: set[date] = {s.started_at.astimezone(now.tzinfo).date() for s in summaries}
    if not days:
        return 0

    cursor = now.date()
    if cursor not in days:
        cursor -= timedelta(days=1)

    count = 0
    while cursor in days:
        count += 1
        cursor -= timedelta(days=1)
    return count


# =============================================================================
# Stats Aggregator
# =============================================================================


class StatsAggregator:
    """Async facade computing UserStats from a CardStore."""

    def __init__(
        self,
        store: CardStore,
        content: ContentProvider | None = None,
        mature_threshold_days: float = DEFAULT_MATURE_THRESHOLD_DAYS,
    ):
        self.store = store
        self.content = content
        self.mature_threshold_days = mature_threshold_days

    def _unseen_count(self, states: list[CardMemoryState]) -> int:
        if self.content is None:
            return 0
        seen = {s.card_id for s in states}
        return sum(1 for card_id in self.content.card_ids() if card_id not in seen)

    async def get_stats(self, user_id: str, now: datetime | None = None) -> UserStats:
        """
        Aggregate everything for one user.

        Args:
            user_id: User to report on
            now: Reference instant (defaults to current UTC time)

        Returns:
            UserStats (all zeros for a user with no history)
        """
        now = require_aware(now or utcnow(), "now")
        states = await self.store.query(user_id)
        summaries = await self.store.list_session_summaries(user_id)
        day_start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
        today_logs = await self.store.list_review_logs(user_id, since=day_start)

        return UserStats(
            retention_rate=retention_rate(states),
            maturity=maturity(states, self.mature_threshold_days, self._unseen_count(states)),
            due_forecast=due_forecast(states, now),
            accuracy_by_difficulty=accuracy_by_difficulty(states),
            study_time=study_time(summaries, now),
            streak_days=streak(summaries, now),
            reviews_today=len(today_logs),
            correct_today=sum(1 for e in today_logs if e.rating.is_correct),
        )

    async def retention_rate(self, user_id: str) -> float:
        return retention_rate(await self.store.query(user_id))

    async def maturity(self, user_id: str) -> MaturityStats:
        states = await self.store.query(user_id)
        return maturity(states, self.mature_threshold_days, self._unseen_count(states))

    async def due_forecast(self, user_id: str, now: datetime | None = None) -> DueForecast:
        return due_forecast(await self.store.query(user_id), now or utcnow())
