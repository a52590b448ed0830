"""
FSRS v4 Spaced Repetition Scheduler.

Implements:
- Forgetting curve R(t) = (1 + t / (9 * S)) ^ -1
- Difficulty and stability updates driven by a pinned weight vector
- Learning / relearning step sequences before steady-state review
- Optional deterministic interval fuzzing

State transitions:
    New        --Easy-------------> Review      (easy interval)
    New        --Again/Hard/Good--> Learning    (first learning step)
    Learning   --Again------------> Learning    (steps restart)
    Learning   --Hard/Good--------> Learning    (next step) or Review (graduating interval)
    Learning   --Easy-------------> Review      (easy interval)
    Review     --Again------------> Relearning  (lapse)
    Review     --Hard/Good/Easy---> Review
    Relearning --Again------------> Relearning  (lapse, steps restart)
    Relearning --Hard-------------> Relearning  (current step repeats)
    Relearning --Good/Easy--------> Review

The scheduler is pure: it performs no I/O and never mutates its input.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from loguru import logger

from cardwise.core.errors import ValidationError
from cardwise.fsrs.memory import (
    CardMemoryState,
    CardState,
    Rating,
    elapsed_days_between,
    forgetting_curve,
    require_aware,
)
from cardwise.fsrs.parameters import (
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    MIN_STABILITY,
    SchedulerParameters,
)

# (start, end, factor) bands used to widen the fuzz window for longer intervals
FUZZ_RANGES: tuple[tuple[float, float, float], ...] = (
    (2.5, 7.0, 0.15),
    (7.0, 20.0, 0.1),
    (20.0, math.inf, 0.05),
)


@dataclass(frozen=True)
class _Outcome:
    """Target of a single transition before it is folded into the record."""

    state: CardState
    step: int
    due_delta: timedelta
    scheduled_days: int


class FSRSScheduler:
    """
    Computes the next memory state for a card from a rating.

    Each card carries:
    - Stability: days until recall probability decays to ~90%
    - Difficulty: intrinsic difficulty clamped to [1, 10]
    - State: New / Learning / Review / Relearning
    """

    def __init__(self, parameters: SchedulerParameters | None = None):
        """
        Initialize the scheduler.

        Args:
            parameters: Custom parameters (uses pinned fsrs-v4 defaults if None)
        """
        self.parameters = parameters or SchedulerParameters()
        self._w = self.parameters.weights
        self._interval_modifier = 9.0 * (1.0 / self.parameters.request_retention - 1.0)

    # =========================================================================
    # Public API
    # =========================================================================

    def review(
        self,
        state: CardMemoryState | None,
        rating: Rating | int | str,
        now: datetime,
        *,
        card_id: str | None = None,
        user_id: str | None = None,
    ) -> CardMemoryState:
        """
        Apply a rating to a card.

        Args:
            state: Current memory state, or None for a never-rated card
            rating: Again/Hard/Good/Easy (enum, ordinal or name)
            now: Review instant (timezone-aware)
            card_id: Required when state is None
            user_id: Required when state is None

        Returns:
            New CardMemoryState with reps, due and last_review updated

        Raises:
            ValidationError: Invalid rating, naive timestamp, or now before last_review
        """
        rating = Rating.parse(rating)
        require_aware(now, "now")

        if state is None:
            if not card_id or not user_id:
                raise ValidationError("card_id and user_id are required for a new card")
            state = CardMemoryState.new(card_id, user_id, now)

        if state.last_review is not None and now < state.last_review:
            raise ValidationError(
                f"Review time {now.isoformat()} precedes last review "
                f"{state.last_review.isoformat()}",
                card_id=state.card_id,
                user_id=state.user_id,
            )

        elapsed_days = 0
        if state.state != CardState.NEW and state.last_review is not None:
            elapsed_days = int(elapsed_days_between(state.last_review, now))

        difficulty, stability = self._next_memory(state, rating, elapsed_days)
        outcome = self._transition(state, rating, now, elapsed_days, stability)

        lapsed = rating == Rating.AGAIN and state.state in (
            CardState.REVIEW,
            CardState.RELEARNING,
        )

        updated = replace(
            state,
            due=now + outcome.due_delta,
            stability=stability,
            difficulty=difficulty,
            elapsed_days=elapsed_days,
            scheduled_days=outcome.scheduled_days,
            reps=state.reps + 1,
            lapses=state.lapses + 1 if lapsed else state.lapses,
            state=outcome.state,
            step=outcome.step,
            last_review=now,
            total_reviews=state.total_reviews + 1,
            total_correct=state.total_correct + (1 if rating.is_correct else 0),
        )

        logger.debug(
            "Scheduled {} for {}: {} -> {} ({}), S={:.2f} D={:.2f} due={}",
            updated.card_id,
            updated.user_id,
            state.state.value,
            updated.state.value,
            rating.name,
            updated.stability,
            updated.difficulty,
            updated.due.isoformat(),
        )
        return updated

    def preview(
        self,
        state: CardMemoryState | None,
        now: datetime,
        *,
        card_id: str | None = None,
        user_id: str | None = None,
    ) -> dict[Rating, CardMemoryState]:
        """
        Compute the outcome of every rating without committing to one.

        Used to label rating buttons with their next interval.
        """
        return {
            rating: self.review(state, rating, now, card_id=card_id, user_id=user_id)
            for rating in Rating
        }

    def next_interval(self, stability: float) -> int:
        """Whole-day interval at which recall probability reaches the target retention."""
        interval = round(stability * self._interval_modifier)
        return min(max(interval, 1), self.parameters.maximum_interval)

    # =========================================================================
    # Memory model
    # =========================================================================

    def init_stability(self, rating: Rating) -> float:
        return max(self._w[rating - 1], MIN_STABILITY)

    def init_difficulty(self, rating: Rating) -> float:
        return _clamp_difficulty(self._w[4] - (rating - 3) * self._w[5])

    def next_difficulty(self, difficulty: float, rating: Rating) -> float:
        next_d = difficulty - self._w[6] * (rating - 3)
        # Mean reversion towards the initial difficulty of a Good rating
        reverted = self._w[7] * self._w[4] + (1 - self._w[7]) * next_d
        return _clamp_difficulty(reverted)

    def next_recall_stability(
        self,
        difficulty: float,
        stability: float,
        retrievability: float,
        rating: Rating,
    ) -> float:
        w = self._w
        hard_penalty = w[15] if rating == Rating.HARD else 1.0
        easy_bonus = w[16] if rating == Rating.EASY else 1.0
        growth = (
            math.exp(w[8])
            * (11 - difficulty)
            * math.pow(stability, -w[9])
            * (math.exp((1 - retrievability) * w[10]) - 1)
            * hard_penalty
            * easy_bonus
        )
        return max(stability * (1 + growth), MIN_STABILITY)

    def next_forget_stability(
        self,
        difficulty: float,
        stability: float,
        retrievability: float,
    ) -> float:
        w = self._w
        forgotten = (
            w[11]
            * math.pow(difficulty, -w[12])
            * (math.pow(stability + 1, w[13]) - 1)
            * math.exp((1 - retrievability) * w[14])
        )
        # A lapse never makes a memory more stable than it was
        return max(min(forgotten, stability), MIN_STABILITY)

    def _next_memory(
        self,
        state: CardMemoryState,
        rating: Rating,
        elapsed_days: int,
    ) -> tuple[float, float]:
        """Return (difficulty, stability) after the rating."""
        if state.state == CardState.NEW:
            return self.init_difficulty(rating), self.init_stability(rating)

        retrievability = forgetting_curve(elapsed_days, state.stability)
        difficulty = self.next_difficulty(state.difficulty, rating)
        if rating == Rating.AGAIN:
            stability = self.next_forget_stability(
                state.difficulty, state.stability, retrievability
            )
        else:
            stability = self.next_recall_stability(
                state.difficulty, state.stability, retrievability, rating
            )
        return difficulty, stability

    # =========================================================================
    # State machine
    # =========================================================================

    def _transition(
        self,
        state: CardMemoryState,
        rating: Rating,
        now: datetime,
        elapsed_days: int,
        stability: float,
    ) -> _Outcome:
        params = self.parameters
        learning = params.learning_steps
        relearning = params.relearning_steps

        match (state.state, rating):
            case (CardState.NEW, Rating.EASY) | (CardState.LEARNING, Rating.EASY):
                return self._graduate(params.easy_interval)

            case (CardState.NEW, Rating.AGAIN | Rating.HARD | Rating.GOOD):
                return _Outcome(CardState.LEARNING, 0, learning[0], 0)

            case (CardState.LEARNING, Rating.AGAIN):
                return _Outcome(CardState.LEARNING, 0, learning[0], 0)

            case (CardState.LEARNING, Rating.HARD | Rating.GOOD):
                next_step = state.step + 1
                if next_step >= len(learning):
                    return self._graduate(params.graduating_interval)
                return _Outcome(CardState.LEARNING, next_step, learning[next_step], 0)

            case (CardState.REVIEW | CardState.RELEARNING, Rating.AGAIN):
                return _Outcome(CardState.RELEARNING, 0, relearning[0], 0)

            case (CardState.RELEARNING, Rating.HARD):
                step = min(state.step, len(relearning) - 1)
                return _Outcome(CardState.RELEARNING, step, relearning[step], 0)

            case (CardState.RELEARNING, Rating.GOOD | Rating.EASY):
                interval = self._fuzzed_interval(stability, state, now, elapsed_days)
                return self._graduate(interval)

            case (CardState.REVIEW, Rating.HARD | Rating.GOOD | Rating.EASY):
                interval = self._review_interval(state, rating, now, elapsed_days)
                return self._graduate(interval)

        raise ValidationError(
            f"No transition from {state.state.value} on {rating.name}",
            card_id=state.card_id,
            user_id=state.user_id,
        )

    @staticmethod
    def _graduate(interval_days: int) -> _Outcome:
        return _Outcome(CardState.REVIEW, 0, timedelta(days=interval_days), interval_days)

    def _review_interval(
        self,
        state: CardMemoryState,
        rating: Rating,
        now: datetime,
        elapsed_days: int,
    ) -> int:
        """
        Interval for a successful review, keeping hard <= good < easy.

        All three candidates are computed so the chosen one respects the
        ordering regardless of rounding and fuzz.
        """
        retrievability = forgetting_curve(elapsed_days, state.stability)
        intervals = {}
        for candidate in (Rating.HARD, Rating.GOOD, Rating.EASY):
            s = self.next_recall_stability(
                state.difficulty, state.stability, retrievability, candidate
            )
            intervals[candidate] = self._fuzzed_interval(s, state, now, elapsed_days)

        maximum = self.parameters.maximum_interval
        hard = min(intervals[Rating.HARD], intervals[Rating.GOOD])
        good = min(max(intervals[Rating.GOOD], hard + 1), maximum)
        easy = min(max(intervals[Rating.EASY], good + 1), maximum)
        return {Rating.HARD: hard, Rating.GOOD: good, Rating.EASY: easy}[rating]

    def _fuzzed_interval(
        self,
        stability: float,
        state: CardMemoryState,
        now: datetime,
        elapsed_days: int,
    ) -> int:
        interval = self.next_interval(stability)
        if not self.parameters.enable_fuzz or interval < 2.5:
            return interval

        min_ivl, max_ivl = fuzz_range(interval, elapsed_days, self.parameters.maximum_interval)
        # Seeded from the review identity so identical inputs give identical output
        rng = random.Random(f"{state.card_id}:{state.user_id}:{state.reps}:{now.isoformat()}")
        return rng.randint(min_ivl, max_ivl)


def fuzz_range(interval: float, elapsed_days: int, maximum_interval: int) -> tuple[int, int]:
    """
    Inclusive [min, max] window an interval may be fuzzed into.

    Args:
        interval: Unfuzzed interval in days
        elapsed_days: Days since the previous review
        maximum_interval: Hard ceiling on any interval

    Returns:
        (min_ivl, max_ivl) with min_ivl <= max_ivl
    """
    delta = 1.0
    for start, end, factor in FUZZ_RANGES:
        delta += factor * max(min(interval, end) - start, 0.0)

    interval = min(interval, maximum_interval)
    min_ivl = max(2, round(interval - delta))
    max_ivl = min(round(interval + delta), maximum_interval)
    if interval > elapsed_days:
        min_ivl = max(min_ivl, elapsed_days + 1)
    min_ivl = min(min_ivl, max_ivl)
    return min_ivl, max_ivl


def _clamp_difficulty(value: float) -> float:
    return min(max(value, MIN_DIFFICULTY), MAX_DIFFICULTY)
