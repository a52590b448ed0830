"""
Unit tests for the interactive study loop.

Prompts are replaced so the loop runs without a terminal; the store is
in-memory.
"""

import asyncio

import pytest
from rich.prompt import IntPrompt, Prompt

from cardwise.cli.main import _study
from cardwise.core.errors import PersistenceError
from cardwise.db.store import InMemoryCardStore
from cardwise.delivery.queue_builder import SessionOptions
from cardwise.service import CardwiseService


class BrokenAfterFirstWriteStore(InMemoryCardStore):
    """Accepts one review write, then every later write fails."""

    def __init__(self):
        super().__init__()
        self.upsert_calls = 0

    async def upsert(self, state, review_log=None):
        self.upsert_calls += 1
        if self.upsert_calls > 1:
            raise PersistenceError("database is locked", card_id=state.card_id)
        return await super().upsert(state, review_log)


@pytest.fixture
def answers(monkeypatch):
    monkeypatch.setattr(Prompt, "ask", lambda *args, **kwargs: "")
    monkeypatch.setattr(IntPrompt, "ask", lambda *args, **kwargs: 3)


@pytest.fixture
def loop():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


class TestStudyLoop:
    def test_completed_session_is_saved(self, answers, loop, store, deck):
        service = CardwiseService(store, deck)

        summary = _study(loop, service, SessionOptions(user_id="user-1", new_cards_limit=2))

        assert summary.cards_reviewed == 2
        assert not service.sessions.is_active
        saved = loop.run_until_complete(store.list_session_summaries("user-1"))
        assert [s.session_id for s in saved] == [summary.session_id]

    def test_write_failure_still_saves_session(self, answers, loop, deck):
        store = BrokenAfterFirstWriteStore()
        service = CardwiseService(store, deck)

        with pytest.raises(PersistenceError, match="locked"):
            _study(loop, service, SessionOptions(user_id="user-1", new_cards_limit=3))

        assert not service.sessions.is_active
        saved = loop.run_until_complete(store.list_session_summaries("user-1"))
        assert len(saved) == 1
        assert saved[0].cards_reviewed == 1
        assert loop.run_until_complete(store.get("card-01", "user-1")) is not None
        assert loop.run_until_complete(store.get("card-02", "user-1")) is None
