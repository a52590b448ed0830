"""
Unit tests for learning statistics.
"""

from datetime import timedelta

import pytest

from cardwise.delivery.stats import (
    StatsAggregator,
    accuracy_by_difficulty,
    due_forecast,
    maturity,
    retention_rate,
    streak,
    study_time,
)
from cardwise.fsrs.memory import CardState, Rating, ReviewLogEntry, SessionSummary

from conftest import NOW, make_state, seed


def summary(session_id, started_at, minutes):
    return SessionSummary(
        session_id=session_id,
        user_id="user-1",
        started_at=started_at,
        ended_at=started_at + timedelta(minutes=minutes),
    )


class TestRetention:
    def test_ratio_of_correct_to_total(self):
        states = [
            make_state("c1", total_reviews=4, total_correct=3),
            make_state("c2", total_reviews=4, total_correct=1),
        ]
        assert retention_rate(states) == 0.5

    def test_no_reviews_is_zero(self):
        assert retention_rate([]) == 0.0
        assert retention_rate([make_state("c1", total_reviews=0, total_correct=0)]) == 0.0


class TestMaturity:
    def test_buckets(self):
        states = [
            make_state("c1", stability=30.0),
            make_state("c2", stability=21.0),
            make_state("c3", stability=5.0),
            make_state("c4", state=CardState.LEARNING, stability=1.0),
            make_state("c5", state=CardState.RELEARNING, stability=2.0),
            make_state("c6", state=CardState.NEW, stability=0.1),
        ]

        result = maturity(states, mature_threshold_days=21.0, unseen=2)

        assert result.mature == 2
        assert result.young == 1
        assert result.review == 3
        assert result.learning == 1
        assert result.relearning == 1
        assert result.new == 3
        assert result.total == 8

    def test_empty(self):
        result = maturity([])
        assert result.total == 0
        assert (result.young, result.mature) == (0, 0)


class TestDueForecast:
    def test_buckets(self):
        states = [
            make_state("c1", due=NOW - timedelta(hours=1)),
            make_state("c2", due=NOW + timedelta(hours=6)),
            make_state("c3", due=NOW + timedelta(days=2)),
            make_state("c4", due=NOW + timedelta(days=10)),
            make_state("c5", state=CardState.NEW, due=NOW - timedelta(days=1)),
        ]

        result = due_forecast(states, NOW)

        assert result.overdue == 1
        assert result.today == 2
        assert result.this_week == 1
        assert result.beyond == 1

    def test_empty(self):
        result = due_forecast([], NOW)
        assert (result.overdue, result.today, result.this_week, result.beyond) == (0, 0, 0, 0)


class TestAccuracyByDifficulty:
    def test_buckets(self):
        states = [
            make_state("c1", difficulty=3.0, total_reviews=4, total_correct=4),
            make_state("c2", difficulty=6.0, total_reviews=4, total_correct=2),
            make_state("c3", difficulty=8.5, total_reviews=5, total_correct=1),
            make_state("c4", difficulty=9.0, total_reviews=0, total_correct=0),
        ]

        result = accuracy_by_difficulty(states)

        assert result["easy"].rate == 1.0
        assert result["medium"].rate == 0.5
        assert result["hard"].reviews == 5
        assert result["hard"].rate == pytest.approx(0.2)

    def test_empty_buckets_have_zero_rate(self):
        result = accuracy_by_difficulty([])
        assert set(result) == {"easy", "medium", "hard"}
        assert all(b.rate == 0.0 for b in result.values())


class TestStudyTime:
    def test_windows(self):
        summaries = [
            summary("s1", NOW - timedelta(hours=1), 10),
            summary("s2", NOW - timedelta(days=3), 20),
            summary("s3", NOW - timedelta(days=30), 5),
        ]

        result = study_time(summaries, NOW)

        assert result.today_seconds == 600
        assert result.week_seconds == 1800
        assert result.total_seconds == 2100
        assert result.sessions == 3
        assert result.average_session_seconds == 700


class TestStreak:
    def test_consecutive_days_ending_today(self):
        summaries = [summary(f"s{i}", NOW - timedelta(days=i), 5) for i in range(3)]
        assert streak(summaries, NOW) == 3

    def test_streak_ending_yesterday_still_counts(self):
        summaries = [summary(f"s{i}", NOW - timedelta(days=i), 5) for i in (1, 2)]
        assert streak(summaries, NOW) == 2

    def test_gap_breaks_streak(self):
        summaries = [summary(f"s{i}", NOW - timedelta(days=i), 5) for i in (0, 1, 3, 4)]
        assert streak(summaries, NOW) == 2

    def test_no_sessions(self):
        assert streak([], NOW) == 0


class TestStatsAggregator:
    @pytest.mark.asyncio
    async def test_empty_user_gets_zeros(self, store):
        stats = await StatsAggregator(store).get_stats("nobody", NOW)

        assert stats.retention_rate == 0.0
        assert stats.maturity.total == 0
        assert stats.due_forecast.today == 0
        assert stats.streak_days == 0
        assert stats.study_time.sessions == 0
        assert stats.reviews_today == 0

    @pytest.mark.asyncio
    async def test_aggregates_store_data(self, store, deck):
        entry = ReviewLogEntry(
            card_id="card-01",
            user_id="user-1",
            rating=Rating.GOOD,
            state_before=CardState.REVIEW,
            reviewed_at=NOW - timedelta(hours=2),
        )
        await store.upsert(make_state("card-01", stability=30.0, due=NOW - timedelta(days=1)), entry)
        await seed(store, make_state("card-02", stability=3.0, due=NOW + timedelta(days=3)))
        await store.add_session_summary(summary("s1", NOW - timedelta(hours=2), 15))

        stats = await StatsAggregator(store, deck).get_stats("user-1", NOW)

        assert stats.retention_rate == 1.0
        assert stats.maturity.mature == 1
        assert stats.maturity.young == 1
        assert stats.maturity.new == 3
        assert stats.due_forecast.overdue == 1
        assert stats.due_forecast.this_week == 1
        assert stats.streak_days == 1
        assert stats.study_time.today_seconds == 900
        assert stats.reviews_today == 1
        assert stats.correct_today == 1

    @pytest.mark.asyncio
    async def test_single_metric_helpers(self, store, deck):
        await seed(store, make_state("card-01", total_reviews=2, total_correct=1))
        aggregator = StatsAggregator(store, deck)

        assert await aggregator.retention_rate("user-1") == 0.5
        assert (await aggregator.maturity("user-1")).new == 4
        assert (await aggregator.due_forecast("user-1", NOW)).today == 1
