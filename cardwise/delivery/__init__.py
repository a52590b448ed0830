"""
Review delivery: queue building, session driving and statistics.

Components:
- CardDeck / ContentProvider: card ids and filter metadata
- QueueBuilder: bounded, ordered review queues
- SessionManager: one review session end-to-end
- StatsAggregator: retention, maturity and due forecast
"""

from .content import CardDeck, CardMetadata, ContentProvider, StaticContentProvider
from .queue_builder import DueCounts, ForecastDay, QueueBuilder, ReviewSession, SessionOptions
from .session import SessionManager
from .stats import DueForecast, MaturityStats, StatsAggregator, UserStats

__all__ = [
    # Content
    "CardDeck",
    "CardMetadata",
    "ContentProvider",
    "StaticContentProvider",
    # Queue
    "DueCounts",
    "ForecastDay",
    "QueueBuilder",
    "ReviewSession",
    "SessionOptions",
    # Session
    "SessionManager",
    # Stats
    "DueForecast",
    "MaturityStats",
    "StatsAggregator",
    "UserStats",
]
