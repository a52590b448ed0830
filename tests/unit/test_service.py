"""
Unit tests for the CardwiseService facade.
"""

from datetime import timedelta

import pytest

from cardwise.config import Settings
from cardwise.core.errors import ValidationError
from cardwise.delivery.queue_builder import SessionOptions
from cardwise.fsrs.memory import CardState, Rating
from cardwise.service import CardwiseService

from conftest import NOW, make_state, seed


@pytest.fixture
def service(store, deck):
    return CardwiseService(store, deck)


class TestStudyFlow:
    @pytest.mark.asyncio
    async def test_full_session(self, service, store):
        session = await service.start_session(
            SessionOptions(user_id="user-1", new_cards_limit=3), NOW
        )
        for card_id in list(session.cards):
            await service.review_card(card_id, Rating.EASY, NOW)
        summary = await service.end_session(NOW + timedelta(minutes=2))

        assert summary.cards_reviewed == 3
        assert summary.accuracy == 1.0
        states = await store.query("user-1")
        assert [s.state for s in states] == [CardState.REVIEW] * 3
        assert all(s.due == NOW + timedelta(days=4) for s in states)

    @pytest.mark.asyncio
    async def test_counts_and_stats_follow_reviews(self, service):
        before = await service.get_due_counts("user-1", NOW)
        await service.review_single("card-01", "user-1", Rating.GOOD, NOW)
        after = await service.get_due_counts("user-1", NOW + timedelta(minutes=2))

        assert (before.due, before.new) == (0, 5)
        assert (after.due, after.new) == (1, 4)

        stats = await service.get_stats("user-1", NOW + timedelta(minutes=2))
        assert stats.maturity.learning == 1
        assert stats.reviews_today == 1

    @pytest.mark.asyncio
    async def test_forecast(self, service, store):
        await seed(store, make_state("card-01", due=NOW + timedelta(days=1)))

        forecast = await service.forecast("user-1", days=3, now=NOW)

        assert [d.count for d in forecast] == [0, 1, 0]


class TestSingleReview:
    @pytest.mark.asyncio
    async def test_review_single_persists_with_log(self, service, store):
        result = await service.review_single("card-02", "user-1", "easy", NOW)

        assert result.version == 1
        assert result.state == CardState.REVIEW
        logs = await store.list_review_logs("user-1")
        assert len(logs) == 1
        assert logs[0].rating == Rating.EASY
        assert logs[0].state_before == CardState.NEW

    @pytest.mark.asyncio
    async def test_review_single_rejects_bad_rating(self, service, store):
        with pytest.raises(ValidationError):
            await service.review_single("card-02", "user-1", 9, NOW)
        assert await store.get("card-02", "user-1") is None

    @pytest.mark.asyncio
    async def test_preview_writes_nothing(self, service, store):
        outcomes = await service.preview("card-01", "user-1", NOW)

        assert set(outcomes) == set(Rating)
        assert await store.get("card-01", "user-1") is None

    @pytest.mark.asyncio
    async def test_reset(self, service, store):
        await service.review_single("card-01", "user-1", Rating.GOOD, NOW)
        await service.review_single("card-01", "user-2", Rating.GOOD, NOW)

        assert await service.reset("user-1") == 1
        assert await store.get("card-01", "user-1") is None
        assert await store.get("card-01", "user-2") is not None


def test_from_settings(store, deck):
    settings = Settings(
        _env_file=None,
        fsrs_request_retention=0.8,
        mature_threshold_days=30,
        persistence_retry_attempts=3,
    )

    service = CardwiseService.from_settings(settings, store, deck)

    assert service.scheduler.parameters.request_retention == 0.8
    assert service.stats.mature_threshold_days == 30
    assert service.sessions.retry_attempts == 3
