"""
Review session manager.

Drives one review session at a time:
- start(): build the queue and position on the first card
- review_card(): schedule, persist (one write), then count and advance
- next() / previous(): move within the queue without touching state
- end(): persist a summary and clear the session

Persistence failures leave the session exactly where it was, so a caller
can retry review_card() without the card being rated twice.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from loguru import logger

from cardwise.core.errors import (
    ConcurrencyError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from cardwise.db.store import CardStore
from cardwise.delivery.queue_builder import QueueBuilder, ReviewSession, SessionOptions
from cardwise.fsrs.memory import (
    CardMemoryState,
    Rating,
    ReviewLogEntry,
    SessionSummary,
    utcnow,
)
from cardwise.fsrs.scheduler import FSRSScheduler

T = TypeVar("T")

DEFAULT_ATTEMPTS = 2  # One try plus one retry


@dataclass(frozen=True)
class _PendingWrite:
    """A computed review whose write failed; retried verbatim."""

    rating: Rating
    base_version: int
    state: CardMemoryState
    log: ReviewLogEntry


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    description: str,
    attempts: int = DEFAULT_ATTEMPTS,
) -> T:
    """
    Run an async store operation, retrying on PersistenceError.

    ConcurrencyError and every other error propagate immediately.

    Raises:
        ValidationError: If attempts is less than one
        PersistenceError: When every attempt failed
    """
    _check_attempts(attempts)

    for attempt in range(1, attempts):
        try:
            return await operation()
        except PersistenceError as e:
            logger.warning(
                "Persistence error during {} on attempt {}/{}: {}",
                description,
                attempt,
                attempts,
                e,
            )

    try:
        return await operation()
    except PersistenceError as e:
        logger.error("{} failed after {} attempts: {}", description, attempts, e)
        raise


def _check_attempts(attempts: int) -> int:
    if attempts < 1:
        raise ValidationError(f"retry attempts must be >= 1, got {attempts}")
    return attempts


class SessionManager:
    """
    Owns the active ReviewSession for one user.

    The calling layer serializes review_card() calls; this class does not
    lock.
    """

    def __init__(
        self,
        store: CardStore,
        queue_builder: QueueBuilder,
        scheduler: FSRSScheduler | None = None,
        retry_attempts: int = DEFAULT_ATTEMPTS,
    ):
        """
        Initialize the session manager.

        Args:
            store: CardStore for memory state and session summaries
            queue_builder: Builds the session queue
            scheduler: FSRSScheduler (creates default if None)
            retry_attempts: Total attempts for each store call
        """
        self.store = store
        self.queue_builder = queue_builder
        self.scheduler = scheduler or FSRSScheduler()
        self.retry_attempts = _check_attempts(retry_attempts)
        self._session: ReviewSession | None = None
        self._pending: dict[str, _PendingWrite] = {}

    @property
    def session(self) -> ReviewSession | None:
        return self._session

    @property
    def is_active(self) -> bool:
        return self._session is not None

    def _require_session(self) -> ReviewSession:
        if self._session is None:
            raise NotFoundError("No active review session")
        return self._session

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, options: SessionOptions, now: datetime | None = None) -> ReviewSession:
        """
        Build the queue and make it the active session.

        Raises:
            ConcurrencyError: If a session is already active
        """
        if self._session is not None:
            raise ConcurrencyError(
                f"Session {self._session.session_id} is still active",
                user_id=self._session.user_id,
            )

        session = await self.queue_builder.build(options, now)
        self._session = session
        self._pending.clear()
        logger.info(
            "Session {} started for {} with {} cards",
            session.session_id,
            session.user_id,
            session.total_cards,
        )
        return session

    async def end(self, now: datetime | None = None) -> SessionSummary:
        """
        Persist a summary of the active session and clear it.

        If the summary cannot be written the session stays active so the
        call can be repeated. Stores treat a repeated summary for the same
        session_id as already written, so a write that landed despite
        reporting failure does not wedge the session.
        """
        session = self._require_session()
        ended_at = now or utcnow()
        summary = SessionSummary(
            session_id=session.session_id,
            user_id=session.user_id,
            started_at=session.started_at,
            ended_at=max(ended_at, session.started_at),
            cards_reviewed=session.reviewed,
            cards_correct=session.correct,
            cards_again=session.again,
            by_rating=dict(session.by_rating),
        )

        await with_retry(
            lambda: self.store.add_session_summary(summary),
            "session summary write",
            self.retry_attempts,
        )

        self._session = None
        self._pending.clear()
        logger.info(
            "Session {} ended: {} reviewed, {} correct in {}s",
            summary.session_id,
            summary.cards_reviewed,
            summary.cards_correct,
            summary.duration_seconds,
        )
        return summary

    # =========================================================================
    # Navigation
    # =========================================================================

    def current_card(self) -> str | None:
        """Card id at the current position, or None when the queue is done."""
        return self._require_session().current_card

    def next(self) -> str | None:
        """Move forward one card (stops one past the end)."""
        session = self._require_session()
        session.current_index = min(session.current_index + 1, len(session.cards))
        return session.current_card

    def previous(self) -> str | None:
        """Move back one card (stops at the first card)."""
        session = self._require_session()
        session.current_index = max(session.current_index - 1, 0)
        return session.current_card

    # =========================================================================
    # Reviewing
    # =========================================================================

    async def review_card(
        self,
        card_id: str,
        rating: Rating | int | str,
        now: datetime | None = None,
    ) -> CardMemoryState:
        """
        Rate a card in the active session.

        Args:
            card_id: A card in the session queue
            rating: Again/Hard/Good/Easy
            now: Review instant (defaults to current UTC time)

        Returns:
            The persisted CardMemoryState

        Raises:
            ValidationError: Invalid rating or review time
            NotFoundError: No active session, or card not in the queue
            PersistenceError: Write failed twice; the session did not advance
            ConcurrencyError: Stored record changed underneath this session
        """
        rating = Rating.parse(rating)
        session = self._require_session()
        if card_id not in session.cards:
            raise NotFoundError(
                f"Card is not in session {session.session_id}",
                card_id=card_id,
                user_id=session.user_id,
            )

        current = await with_retry(
            lambda: self.store.get(card_id, session.user_id),
            "card state read",
            self.retry_attempts,
        )
        base_version = current.version if current else 0

        pending = self._pending.get(card_id)
        if (
            pending is not None
            and pending.rating == rating
            and current is not None
            and current.with_version(pending.state.version) == pending.state
        ):
            # The earlier write landed even though it reported failure
            logger.info("Write of {} had already landed at version {}", card_id, current.version)
            self._pending.pop(card_id, None)
            self._record(session, card_id, rating)
            return current

        if pending is not None and (pending.rating, pending.base_version) == (rating, base_version):
            # Same rating against the same stored record: replay the failed write
            updated, entry = pending.state, pending.log
        else:
            updated = self.scheduler.review(
                current,
                rating,
                now or utcnow(),
                card_id=card_id,
                user_id=session.user_id,
            )
            entry = ReviewLogEntry.from_transition(
                current or CardMemoryState.new(card_id, session.user_id, updated.last_review),
                updated,
                rating,
            )

        try:
            stored = await self._persist(updated, entry)
        except PersistenceError:
            self._pending[card_id] = _PendingWrite(rating, base_version, updated, entry)
            raise

        self._pending.pop(card_id, None)
        self._record(session, card_id, rating)
        return stored

    async def _persist(self, updated: CardMemoryState, entry: ReviewLogEntry) -> CardMemoryState:
        """Single upsert of state + log, retried once on PersistenceError."""
        attempts = self.retry_attempts

        for attempt in range(1, attempts):
            try:
                return await self._upsert(updated, entry, retried=attempt > 1)
            except PersistenceError as e:
                logger.warning(
                    "Write of {} failed on attempt {}/{}: {}",
                    updated.card_id,
                    attempt,
                    attempts,
                    e,
                )

        try:
            return await self._upsert(updated, entry, retried=attempts > 1)
        except PersistenceError:
            logger.error("Giving up on {} after {} attempts", updated.card_id, attempts)
            raise

    async def _upsert(
        self,
        updated: CardMemoryState,
        entry: ReviewLogEntry,
        retried: bool,
    ) -> CardMemoryState:
        try:
            return await self.store.upsert(updated, entry)
        except ConcurrencyError:
            # A write reported as failed may still have landed
            if retried:
                landed = await self._landed(updated)
                if landed is not None:
                    return landed
            raise

    async def _landed(self, updated: CardMemoryState) -> CardMemoryState | None:
        stored = await self.store.get(updated.card_id, updated.user_id)
        if stored is None or stored.version != updated.version + 1:
            return None
        if stored.with_version(updated.version) != updated:
            return None
        logger.info("Write of {} had already landed at version {}", stored.card_id, stored.version)
        return stored

    def _record(self, session: ReviewSession, card_id: str, rating: Rating) -> None:
        session.reviewed += 1
        if rating.is_correct:
            session.correct += 1
        if rating == Rating.AGAIN:
            session.again += 1
        session.by_rating[int(rating)] = session.by_rating.get(int(rating), 0) + 1
        session.current_index = session.cards.index(card_id) + 1
