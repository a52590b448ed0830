"""
Caller-facing operations.

CardwiseService wires the scheduler, queue builder, session manager and
stats aggregator around one injected CardStore and ContentProvider, and
exposes the operations the rest of an application calls:

- start_session / review_card / end_session
- get_due_counts / get_stats / forecast
- preview (next state for each rating)
"""

from __future__ import annotations

from datetime import datetime

from loguru import logger

from cardwise.config import Settings
from cardwise.db.store import CardStore
from cardwise.delivery.content import ContentProvider
from cardwise.delivery.queue_builder import (
    DueCounts,
    ForecastDay,
    QueueBuilder,
    ReviewSession,
    SessionOptions,
)
from cardwise.delivery.session import SessionManager, with_retry
from cardwise.delivery.stats import DEFAULT_MATURE_THRESHOLD_DAYS, StatsAggregator, UserStats
from cardwise.fsrs.memory import (
    CardMemoryState,
    Rating,
    ReviewLogEntry,
    SessionSummary,
    utcnow,
)
from cardwise.fsrs.parameters import SchedulerParameters
from cardwise.fsrs.scheduler import FSRSScheduler


class CardwiseService:
    """Facade over the scheduling core for one store and content source."""

    def __init__(
        self,
        store: CardStore,
        content: ContentProvider,
        scheduler: FSRSScheduler | None = None,
        mature_threshold_days: float = DEFAULT_MATURE_THRESHOLD_DAYS,
        retry_attempts: int = 2,
    ):
        self.store = store
        self.content = content
        self.scheduler = scheduler or FSRSScheduler()
        self.retry_attempts = retry_attempts
        self.queue_builder = QueueBuilder(store, content)
        self.sessions = SessionManager(
            store, self.queue_builder, self.scheduler, retry_attempts=retry_attempts
        )
        self.stats = StatsAggregator(store, content, mature_threshold_days)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: CardStore,
        content: ContentProvider,
    ) -> CardwiseService:
        """Build a service using configured FSRS parameters and limits."""
        scheduler = FSRSScheduler(SchedulerParameters.from_settings(settings))
        return cls(
            store,
            content,
            scheduler=scheduler,
            mature_threshold_days=settings.mature_threshold_days,
            retry_attempts=settings.persistence_retry_attempts,
        )

    # =========================================================================
    # Sessions
    # =========================================================================

    async def start_session(
        self, options: SessionOptions, now: datetime | None = None
    ) -> ReviewSession:
        return await self.sessions.start(options, now)

    async def review_card(
        self,
        card_id: str,
        rating: Rating | int | str,
        now: datetime | None = None,
    ) -> CardMemoryState:
        return await self.sessions.review_card(card_id, rating, now)

    async def end_session(self, now: datetime | None = None) -> SessionSummary:
        return await self.sessions.end(now)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_due_counts(self, user_id: str, now: datetime | None = None) -> DueCounts:
        return await self.queue_builder.due_counts(user_id, now)

    async def get_stats(self, user_id: str, now: datetime | None = None) -> UserStats:
        return await self.stats.get_stats(user_id, now)

    async def forecast(
        self, user_id: str, days: int = 7, now: datetime | None = None
    ) -> list[ForecastDay]:
        return await self.queue_builder.forecast(user_id, now, days)

    async def preview(
        self, card_id: str, user_id: str, now: datetime | None = None
    ) -> dict[Rating, CardMemoryState]:
        """Outcome of each rating for a card, without persisting anything."""
        state = await self.store.get(card_id, user_id)
        return self.scheduler.preview(
            state, now or utcnow(), card_id=card_id, user_id=user_id
        )

    # =========================================================================
    # Single reviews
    # =========================================================================

    async def review_single(
        self,
        card_id: str,
        user_id: str,
        rating: Rating | int | str,
        now: datetime | None = None,
    ) -> CardMemoryState:
        """
        Rate one card outside any session.

        The write is retried once on PersistenceError like session reviews.
        """
        rating = Rating.parse(rating)
        current = await self.store.get(card_id, user_id)
        updated = self.scheduler.review(
            current, rating, now or utcnow(), card_id=card_id, user_id=user_id
        )
        entry = ReviewLogEntry.from_transition(
            current or CardMemoryState.new(card_id, user_id, updated.last_review),
            updated,
            rating,
        )
        stored = await with_retry(
            lambda: self.store.upsert(updated, entry),
            f"review of {card_id}",
            self.retry_attempts,
        )
        logger.info("Reviewed {} for {} as {}", card_id, user_id, rating.name)
        return stored

    async def reset(self, user_id: str) -> int:
        """Bulk-delete a user's memory state."""
        return await self.store.reset(user_id)
