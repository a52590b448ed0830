"""
Review queue builder.

Selects and orders the cards for one review session:
1. Due cards (state != New, due <= now), most overdue first, relearning
   cards ahead of review cards due at the same instant
2. New cards (no persisted state), ordered by card id
3. Interleaved 2 due : 1 new so long sessions don't front-load all the
   unfamiliar material
"""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from loguru import logger

from cardwise.core.errors import ValidationError
from cardwise.db.store import CardStore
from cardwise.delivery.content import ContentProvider, select_card_ids
from cardwise.fsrs.memory import CardMemoryState, CardState, require_aware, utcnow

# Interleaving ratio: 2 due : 1 new
DUE_BATCH = 2
NEW_BATCH = 1

# =============================================================================
# Data classes
# =============================================================================


@dataclass
class SessionOptions:
    """Options for building a review session."""

    user_id: str
    new_cards_limit: int = 20
    review_limit: int = 100
    tags: list[str] = field(default_factory=list)
    structure_ids: list[str] = field(default_factory=list)
    interleave: bool = True
    shuffle_new: bool = False
    shuffle_seed: int | None = None

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValidationError("user_id is required")
        if self.new_cards_limit < 0:
            raise ValidationError(f"new_cards_limit must be >= 0, got {self.new_cards_limit}")
        if self.review_limit < 0:
            raise ValidationError(f"review_limit must be >= 0, got {self.review_limit}")


@dataclass
class ReviewSession:
    """An ordered queue of cards plus running counters."""

    user_id: str
    cards: list[str] = field(default_factory=list)
    current_index: int = 0
    started_at: datetime = field(default_factory=utcnow)
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    due_count: int = 0
    new_count: int = 0

    # Running counters
    reviewed: int = 0
    correct: int = 0
    again: int = 0
    by_rating: dict[int, int] = field(default_factory=dict)

    @property
    def total_cards(self) -> int:
        return len(self.cards)

    @property
    def is_empty(self) -> bool:
        """An empty session means nothing is due, not an error."""
        return not self.cards

    @property
    def is_complete(self) -> bool:
        return self.current_index >= len(self.cards)

    @property
    def current_card(self) -> str | None:
        if self.is_complete:
            return None
        return self.cards[self.current_index]

    @property
    def remaining(self) -> int:
        return max(0, len(self.cards) - self.current_index)

    @property
    def estimated_minutes(self) -> int:
        """Estimate study time (30 sec per card average)."""
        return max(1, self.total_cards // 2)


@dataclass
class QueuePartition:
    """Cards split by scheduling status, each list already ordered."""

    new: list[str] = field(default_factory=list)
    due: list[CardMemoryState] = field(default_factory=list)
    not_due: list[CardMemoryState] = field(default_factory=list)


@dataclass(frozen=True)
class DueCounts:
    due: int = 0
    new: int = 0
    total: int = 0


@dataclass(frozen=True)
class ForecastDay:
    """Number of cards falling due on one calendar day (UTC)."""

    day: date
    count: int


def due_sort_key(state: CardMemoryState) -> tuple:
    """Most overdue first; relearning before review on ties; card id last."""
    return (state.due, 0 if state.state == CardState.RELEARNING else 1, state.card_id)


def interleave(due: list[str], new: list[str]) -> list[str]:
    """
    Merge due and new cards at a fixed 2:1 ratio.

    Deterministic: the same inputs always give the same queue. When one
    list runs out the rest of the other is appended in order.
    """
    result: list[str] = []
    due_queue = list(due)
    new_queue = list(new)

    while due_queue or new_queue:
        for _ in range(DUE_BATCH):
            if due_queue:
                result.append(due_queue.pop(0))
        for _ in range(NEW_BATCH):
            if new_queue:
                result.append(new_queue.pop(0))

    return result


def end_of_day(moment: datetime) -> datetime:
    """Last instant of moment's calendar day, in moment's timezone."""
    next_midnight = datetime.combine(
        moment.date() + timedelta(days=1), time.min, tzinfo=moment.tzinfo
    )
    return next_midnight - timedelta(microseconds=1)


# =============================================================================
# Queue Builder
# =============================================================================


class QueueBuilder:
    """
    Builds review sessions from persisted state and the content provider.

    Key principles:
    1. Every selection is bounded by the per-session limits
    2. Ordering is deterministic unless shuffle_new is requested
    3. No state is written
    """

    def __init__(self, store: CardStore, content: ContentProvider):
        """
        Initialize the queue builder.

        Args:
            store: CardStore holding memory state
            content: Provider of card ids and filter metadata
        """
        self.store = store
        self.content = content

    async def partition(
        self,
        user_id: str,
        now: datetime,
        tags: list[str] | None = None,
        structure_ids: list[str] | None = None,
    ) -> QueuePartition:
        """
        Split a user's cards into new / due / not-due.

        With no filters every persisted state counts, even for cards the
        provider no longer lists. With filters only matching cards count.
        """
        require_aware(now, "now")
        candidates = select_card_ids(self.content, tags, structure_ids)
        states = await self.store.query(user_id)

        candidate_set = set(candidates)
        if tags or structure_ids:
            states = [s for s in states if s.card_id in candidate_set]

        by_card = {s.card_id: s for s in states}
        partition = QueuePartition()
        partition.new = [
            card_id
            for card_id in candidates
            if card_id not in by_card or by_card[card_id].state == CardState.NEW
        ]

        for state in states:
            if state.state == CardState.NEW:
                if state.card_id not in candidate_set:
                    partition.new.append(state.card_id)
            elif state.due <= now:
                partition.due.append(state)
            else:
                partition.not_due.append(state)

        partition.new.sort()
        partition.due.sort(key=due_sort_key)
        partition.not_due.sort(key=due_sort_key)
        return partition

    async def build(self, options: SessionOptions, now: datetime | None = None) -> ReviewSession:
        """
        Build a review session.

        Args:
            options: Limits, filters and ordering flags
            now: Reference instant (defaults to current UTC time)

        Returns:
            ReviewSession positioned at the first card (possibly empty)
        """
        now = now or utcnow()
        partition = await self.partition(
            options.user_id, now, options.tags, options.structure_ids
        )

        new_ids = list(partition.new)
        if options.shuffle_new:
            random.Random(options.shuffle_seed).shuffle(new_ids)
        new_ids = new_ids[: options.new_cards_limit]
        due_ids = [s.card_id for s in partition.due[: options.review_limit]]

        if options.interleave:
            cards = interleave(due_ids, new_ids)
        else:
            cards = due_ids + new_ids

        session = ReviewSession(
            user_id=options.user_id,
            cards=cards,
            started_at=now,
            due_count=len(due_ids),
            new_count=len(new_ids),
        )

        logger.info(
            "Session built for {}: {} due + {} new = {} cards (~{} min)",
            options.user_id,
            session.due_count,
            session.new_count,
            session.total_cards,
            session.estimated_minutes,
        )
        return session

    async def due_counts(
        self,
        user_id: str,
        now: datetime | None = None,
        tags: list[str] | None = None,
        structure_ids: list[str] | None = None,
    ) -> DueCounts:
        """Count due and new cards without applying session limits."""
        now = now or utcnow()
        partition = await self.partition(user_id, now, tags, structure_ids)
        due = len(partition.due)
        new = len(partition.new)
        return DueCounts(due=due, new=new, total=due + new)

    async def forecast(
        self,
        user_id: str,
        now: datetime | None = None,
        days: int = 7,
    ) -> list[ForecastDay]:
        """
        Per-day due counts for the next `days` days.

        Day 0 includes everything already overdue.
        """
        if days < 1:
            raise ValidationError(f"days must be >= 1, got {days}")
        now = require_aware(now or utcnow(), "now")
        states = [s for s in await self.store.query(user_id) if s.state != CardState.NEW]

        today = now.date()
        counts = {today + timedelta(days=i): 0 for i in range(days)}
        for state in states:
            due_day = state.due.astimezone(now.tzinfo).date()
            if due_day < today:
                due_day = today
            if due_day in counts:
                counts[due_day] += 1

        return [ForecastDay(day=d, count=c) for d, c in sorted(counts.items())]
