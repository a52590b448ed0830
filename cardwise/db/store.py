"""
Persistence contract for card memory state.

Implementations:
- InMemoryCardStore: dict-backed, for tests and ephemeral use
- SqlCardStore (cardwise.db.sql_store): SQLAlchemy async backed

Writes use optimistic concurrency: a record read at version N may only be
written back while the stored copy is still at version N. The store returns
the written record at version N + 1.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol, runtime_checkable

from loguru import logger

from cardwise.core.errors import ConcurrencyError
from cardwise.fsrs.memory import CardMemoryState, CardState, ReviewLogEntry, SessionSummary


@dataclass(frozen=True)
class StateFilter:
    """Optional narrowing for CardStore.query."""

    card_ids: frozenset[str] | None = None
    states: frozenset[CardState] | None = None
    due_before: datetime | None = None

    def matches(self, state: CardMemoryState) -> bool:
        if self.card_ids is not None and state.card_id not in self.card_ids:
            return False
        if self.states is not None and state.state not in self.states:
            return False
        if self.due_before is not None and state.due > self.due_before:
            return False
        return True


@runtime_checkable
class CardStore(Protocol):
    """Async record store consumed by the queue, session and stats components."""

    async def get(self, card_id: str, user_id: str) -> CardMemoryState | None: ...

    async def upsert(
        self, state: CardMemoryState, review_log: ReviewLogEntry | None = None
    ) -> CardMemoryState: ...

    async def query(
        self, user_id: str, state_filter: StateFilter | None = None
    ) -> list[CardMemoryState]: ...

    async def list_review_logs(
        self, user_id: str, since: datetime | None = None
    ) -> list[ReviewLogEntry]: ...

    async def add_session_summary(self, summary: SessionSummary) -> None:
        """Idempotent on session_id: a repeated write is a no-op."""

    async def list_session_summaries(self, user_id: str) -> list[SessionSummary]: ...

    async def reset(self, user_id: str) -> int: ...


class InMemoryCardStore:
    """
    Dict-backed CardStore.

    Records are frozen dataclasses, so handing them out never exposes
    mutable internal state.
    """

    def __init__(self) -> None:
        self._states: dict[tuple[str, str], CardMemoryState] = {}
        self._review_logs: list[ReviewLogEntry] = []
        self._sessions: list[SessionSummary] = []

    async def get(self, card_id: str, user_id: str) -> CardMemoryState | None:
        return self._states.get((card_id, user_id))

    async def upsert(
        self, state: CardMemoryState, review_log: ReviewLogEntry | None = None
    ) -> CardMemoryState:
        current = self._states.get(state.key)
        current_version = current.version if current else 0
        if state.version != current_version:
            raise ConcurrencyError(
                f"Stale write: expected version {current_version}, got {state.version}",
                card_id=state.card_id,
                user_id=state.user_id,
                expected_version=current_version,
                actual_version=state.version,
            )

        stored = state.with_version(current_version + 1)
        self._states[state.key] = stored
        if review_log is not None:
            self._review_logs.append(review_log)
        logger.debug("Stored {} for {} at version {}", state.card_id, state.user_id, stored.version)
        return stored

    async def query(
        self, user_id: str, state_filter: StateFilter | None = None
    ) -> list[CardMemoryState]:
        results = [s for (_, uid), s in self._states.items() if uid == user_id]
        if state_filter is not None:
            results = [s for s in results if state_filter.matches(s)]
        return sorted(results, key=lambda s: s.card_id)

    async def list_review_logs(
        self, user_id: str, since: datetime | None = None
    ) -> list[ReviewLogEntry]:
        return [
            e
            for e in self._review_logs
            if e.user_id == user_id and (since is None or e.reviewed_at >= since)
        ]

    async def add_session_summary(self, summary: SessionSummary) -> None:
        if any(s.session_id == summary.session_id for s in self._sessions):
            logger.debug("Session {} already saved", summary.session_id)
            return
        self._sessions.append(replace(summary, by_rating=dict(summary.by_rating)))

    async def list_session_summaries(self, user_id: str) -> list[SessionSummary]:
        return [
            replace(s, by_rating=dict(s.by_rating))
            for s in sorted(self._sessions, key=lambda s: s.started_at)
            if s.user_id == user_id
        ]

    async def reset(self, user_id: str) -> int:
        keys = [key for key in self._states if key[1] == user_id]
        for key in keys:
            del self._states[key]
        self._review_logs = [e for e in self._review_logs if e.user_id != user_id]
        logger.info("Reset {} card states for {}", len(keys), user_id)
        return len(keys)
