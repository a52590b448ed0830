"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from cardwise.db.store import InMemoryCardStore  # noqa: E402
from cardwise.delivery.content import CardDeck, CardMetadata  # noqa: E402
from cardwise.fsrs.memory import CardMemoryState, CardState  # noqa: E402
from cardwise.fsrs.scheduler import FSRSScheduler  # noqa: E402

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (sqlite database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    """A fixed, timezone-aware reference instant."""
    return NOW


@pytest.fixture
def scheduler():
    """Scheduler with pinned default parameters (fuzz off)."""
    return FSRSScheduler()


@pytest.fixture
def store():
    """Empty in-memory card store."""
    return InMemoryCardStore()


@pytest.fixture
def deck():
    """Small deck with tags and structures for filter tests."""
    return CardDeck([
        CardMetadata("card-01", tags=("heart",), structure_id="aorta", front="Aorta?", back="Largest artery"),
        CardMetadata("card-02", tags=("heart",), structure_id="ventricle"),
        CardMetadata("card-03", tags=("lung",), structure_id="bronchus"),
        CardMetadata("card-04", tags=("lung", "heart"), structure_id="pulmonary-artery"),
        CardMetadata("card-05", tags=("brain",), structure_id="cortex"),
    ])


def make_state(
    card_id: str,
    user_id: str = "user-1",
    *,
    state: CardState = CardState.REVIEW,
    due: datetime = NOW,
    stability: float = 10.0,
    difficulty: float = 5.0,
    reps: int = 3,
    lapses: int = 0,
    last_review: datetime | None = None,
    total_reviews: int = 3,
    total_correct: int = 3,
    version: int = 0,
) -> CardMemoryState:
    """Build a CardMemoryState with sensible review-state defaults."""
    if last_review is None:
        last_review = due - timedelta(days=max(1, round(stability)))
    return CardMemoryState(
        card_id=card_id,
        user_id=user_id,
        due=due,
        stability=stability,
        difficulty=difficulty,
        reps=reps,
        lapses=lapses,
        state=state,
        last_review=last_review,
        total_reviews=total_reviews,
        total_correct=total_correct,
        version=version,
    )


async def seed(store: InMemoryCardStore, *states: CardMemoryState) -> None:
    """Write states into a store as first versions."""
    for state in states:
        await store.upsert(state)
