"""
SQLAlchemy-backed CardStore.

Works against sqlite (aiosqlite) or postgres (asyncpg). Every driver error
is surfaced as PersistenceError; version conflicts as ConcurrencyError.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from cardwise.core.errors import ConcurrencyError, PersistenceError
from cardwise.db.database import Database
from cardwise.db.models import CardMemoryStateRow, ReviewLogRow, SessionSummaryRow
from cardwise.db.store import StateFilter
from cardwise.fsrs.memory import (
    CardMemoryState,
    CardState,
    Rating,
    ReviewLogEntry,
    SessionSummary,
)

_STATE_COLUMNS = (
    "due",
    "stability",
    "difficulty",
    "elapsed_days",
    "scheduled_days",
    "reps",
    "lapses",
    "last_review",
    "total_reviews",
    "total_correct",
    "step",
)


def _row_values(state: CardMemoryState) -> dict[str, Any]:
    values = {name: getattr(state, name) for name in _STATE_COLUMNS}
    values["state"] = state.state.value
    return values


def _to_state(row: CardMemoryStateRow) -> CardMemoryState:
    return CardMemoryState(
        card_id=row.card_id,
        user_id=row.user_id,
        due=row.due,
        stability=row.stability,
        difficulty=row.difficulty,
        elapsed_days=row.elapsed_days,
        scheduled_days=row.scheduled_days,
        reps=row.reps,
        lapses=row.lapses,
        state=CardState(row.state),
        last_review=row.last_review,
        total_reviews=row.total_reviews,
        total_correct=row.total_correct,
        step=row.step,
        version=row.version,
    )


def _log_row(entry: ReviewLogEntry) -> ReviewLogRow:
    return ReviewLogRow(
        card_id=entry.card_id,
        user_id=entry.user_id,
        rating=int(entry.rating),
        state_before=entry.state_before.value,
        reviewed_at=entry.reviewed_at,
        elapsed_days=entry.elapsed_days,
        scheduled_days=entry.scheduled_days,
        stability=entry.stability,
        difficulty=entry.difficulty,
    )


class SqlCardStore:
    """CardStore over a relational database."""

    def __init__(self, database: Database):
        self.database = database

    async def get(self, card_id: str, user_id: str) -> CardMemoryState | None:
        try:
            async with self.database.session_scope() as session:
                row = await session.get(CardMemoryStateRow, (card_id, user_id))
                return _to_state(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to read card state: {e}", card_id=card_id, user_id=user_id
            ) from e

    async def upsert(
        self, state: CardMemoryState, review_log: ReviewLogEntry | None = None
    ) -> CardMemoryState:
        """
        Write a record if its version still matches the stored one.

        The optional review log entry is written in the same transaction.

        Returns:
            The stored record with its version bumped

        Raises:
            ConcurrencyError: Stored version differs from state.version
            PersistenceError: Any database failure
        """
        new_version = state.version + 1
        values = _row_values(state)
        try:
            async with self.database.session_scope() as session:
                if state.version == 0:
                    await session.execute(
                        insert(CardMemoryStateRow).values(
                            card_id=state.card_id,
                            user_id=state.user_id,
                            version=new_version,
                            **values,
                        )
                    )
                else:
                    result = await session.execute(
                        update(CardMemoryStateRow)
                        .where(
                            CardMemoryStateRow.card_id == state.card_id,
                            CardMemoryStateRow.user_id == state.user_id,
                            CardMemoryStateRow.version == state.version,
                        )
                        .values(version=new_version, **values)
                    )
                    if result.rowcount != 1:
                        current = await session.get(
                            CardMemoryStateRow, (state.card_id, state.user_id)
                        )
                        actual = current.version if current else 0
                        raise ConcurrencyError(
                            f"Stale write: expected version {actual}, got {state.version}",
                            card_id=state.card_id,
                            user_id=state.user_id,
                            expected_version=actual,
                            actual_version=state.version,
                        )
                if review_log is not None:
                    session.add(_log_row(review_log))
        except IntegrityError as e:
            raise ConcurrencyError(
                "Stale write: record was created concurrently",
                card_id=state.card_id,
                user_id=state.user_id,
                expected_version=None,
                actual_version=state.version,
            ) from e
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to write card state: {e}",
                card_id=state.card_id,
                user_id=state.user_id,
            ) from e

        logger.debug("Stored {} for {} at version {}", state.card_id, state.user_id, new_version)
        return state.with_version(new_version)

    async def query(
        self, user_id: str, state_filter: StateFilter | None = None
    ) -> list[CardMemoryState]:
        stmt = select(CardMemoryStateRow).where(CardMemoryStateRow.user_id == user_id)
        if state_filter is not None:
            if state_filter.card_ids is not None:
                stmt = stmt.where(CardMemoryStateRow.card_id.in_(state_filter.card_ids))
            if state_filter.states is not None:
                stmt = stmt.where(
                    CardMemoryStateRow.state.in_([s.value for s in state_filter.states])
                )
            if state_filter.due_before is not None:
                stmt = stmt.where(CardMemoryStateRow.due <= state_filter.due_before)
        stmt = stmt.order_by(CardMemoryStateRow.card_id)

        try:
            async with self.database.session_scope() as session:
                rows = (await session.execute(stmt)).scalars().all()
                return [_to_state(row) for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to query card states: {e}", user_id=user_id) from e

    async def list_review_logs(
        self, user_id: str, since: datetime | None = None
    ) -> list[ReviewLogEntry]:
        stmt = select(ReviewLogRow).where(ReviewLogRow.user_id == user_id)
        if since is not None:
            stmt = stmt.where(ReviewLogRow.reviewed_at >= since)
        stmt = stmt.order_by(ReviewLogRow.reviewed_at, ReviewLogRow.id)

        try:
            async with self.database.session_scope() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read review log: {e}", user_id=user_id) from e

        return [
            ReviewLogEntry(
                card_id=row.card_id,
                user_id=row.user_id,
                rating=Rating(row.rating),
                state_before=CardState(row.state_before),
                reviewed_at=row.reviewed_at,
                elapsed_days=row.elapsed_days,
                scheduled_days=row.scheduled_days,
                stability=row.stability,
                difficulty=row.difficulty,
            )
            for row in rows
        ]

    async def add_session_summary(self, summary: SessionSummary) -> None:
        row = SessionSummaryRow(
            session_id=summary.session_id,
            user_id=summary.user_id,
            session_type=summary.session_type,
            started_at=summary.started_at,
            ended_at=summary.ended_at,
            duration_seconds=summary.duration_seconds,
            cards_reviewed=summary.cards_reviewed,
            cards_correct=summary.cards_correct,
            cards_again=summary.cards_again,
            by_rating={str(k): v for k, v in summary.by_rating.items()},
        )
        try:
            async with self.database.session_scope() as session:
                existing = await session.get(SessionSummaryRow, summary.session_id)
                if existing is None:
                    session.add(row)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to write session summary: {e}", user_id=summary.user_id
            ) from e
        if existing is not None:
            logger.debug("Session {} already saved", summary.session_id)
            return
        logger.info("Session {} saved for {}", summary.session_id, summary.user_id)

    async def list_session_summaries(self, user_id: str) -> list[SessionSummary]:
        stmt = (
            select(SessionSummaryRow)
            .where(SessionSummaryRow.user_id == user_id)
            .order_by(SessionSummaryRow.started_at)
        )
        try:
            async with self.database.session_scope() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read sessions: {e}", user_id=user_id) from e

        return [
            SessionSummary(
                session_id=row.session_id,
                user_id=row.user_id,
                started_at=row.started_at,
                ended_at=row.ended_at,
                cards_reviewed=row.cards_reviewed,
                cards_correct=row.cards_correct,
                cards_again=row.cards_again,
                session_type=row.session_type,
                by_rating={int(k): v for k, v in (row.by_rating or {}).items()},
            )
            for row in rows
        ]

    async def reset(self, user_id: str) -> int:
        """Delete all card states and review logs for a user."""
        try:
            async with self.database.session_scope() as session:
                result = await session.execute(
                    delete(CardMemoryStateRow).where(CardMemoryStateRow.user_id == user_id)
                )
                await session.execute(delete(ReviewLogRow).where(ReviewLogRow.user_id == user_id))
                count = result.rowcount or 0
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to reset card states: {e}", user_id=user_id) from e

        logger.info("Reset {} card states for {}", count, user_id)
        return count
