"""
Versioned FSRS parameter sets.

The weight vector is pinned by version name so that schedules computed
against previously persisted review history stay reproducible. Adding a
new calibrated set means adding a new entry to PARAMETER_SETS, never
editing an existing one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from cardwise.core.errors import ValidationError

if TYPE_CHECKING:
    from cardwise.config import Settings

# Published FSRS v4 default weights (w0..w16).
FSRS_V4_WEIGHTS: tuple[float, ...] = (
    0.4, 0.6, 2.4, 5.8,  # initial stability per rating
    4.93, 0.94,  # initial difficulty
    0.86, 0.01,  # difficulty step, mean reversion
    1.49, 0.14, 0.94,  # recall stability
    2.18, 0.05, 0.34, 1.26,  # forget stability
    0.29, 2.61,  # hard penalty, easy bonus
)

DEFAULT_VERSION = "fsrs-v4"

PARAMETER_SETS: dict[str, tuple[float, ...]] = {
    DEFAULT_VERSION: FSRS_V4_WEIGHTS,
}

WEIGHT_COUNT = 17
MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0
MIN_STABILITY = 0.1


@dataclass(frozen=True)
class SchedulerParameters:
    """Everything the scheduler needs besides the card and the rating."""

    version: str = DEFAULT_VERSION
    weights: tuple[float, ...] = FSRS_V4_WEIGHTS
    request_retention: float = 0.9
    maximum_interval: int = 365  # days
    learning_steps: tuple[timedelta, ...] = field(
        default=(timedelta(minutes=1), timedelta(minutes=10))
    )
    relearning_steps: tuple[timedelta, ...] = field(default=(timedelta(minutes=10),))
    graduating_interval: int = 1  # days
    easy_interval: int = 4  # days
    enable_fuzz: bool = False

    def __post_init__(self) -> None:
        if len(self.weights) != WEIGHT_COUNT:
            raise ValidationError(
                f"Expected {WEIGHT_COUNT} weights for {self.version}, got {len(self.weights)}"
            )
        if not 0.0 < self.request_retention < 1.0:
            raise ValidationError(
                f"request_retention must be in (0, 1), got {self.request_retention}"
            )
        if self.maximum_interval < 1:
            raise ValidationError("maximum_interval must be at least 1 day")
        if not 1 <= self.graduating_interval <= self.maximum_interval:
            raise ValidationError("graduating_interval must be within [1, maximum_interval]")
        if not 1 <= self.easy_interval <= self.maximum_interval:
            raise ValidationError("easy_interval must be within [1, maximum_interval]")
        if not self.learning_steps or not self.relearning_steps:
            raise ValidationError("learning and relearning steps must not be empty")
        for step in (*self.learning_steps, *self.relearning_steps):
            if step <= timedelta(0):
                raise ValidationError(f"Steps must be positive, got {step}")

    @property
    def w(self) -> tuple[float, ...]:
        return self.weights

    @classmethod
    def for_version(cls, version: str, **overrides) -> SchedulerParameters:
        """
        Build parameters for a pinned weight version.

        Raises:
            ValidationError: If the version is not registered
        """
        try:
            weights = PARAMETER_SETS[version]
        except KeyError:
            known = ", ".join(sorted(PARAMETER_SETS))
            raise ValidationError(
                f"Unknown FSRS parameter version {version!r} (known: {known})"
            ) from None
        return cls(version=version, weights=weights, **overrides)

    @classmethod
    def from_settings(cls, settings: Settings) -> SchedulerParameters:
        """Build parameters from application settings."""
        return cls.for_version(
            settings.fsrs_parameters_version,
            request_retention=settings.fsrs_request_retention,
            maximum_interval=settings.fsrs_maximum_interval,
            learning_steps=tuple(
                timedelta(minutes=m) for m in settings.learning_steps_minutes
            ),
            relearning_steps=tuple(
                timedelta(minutes=m) for m in settings.relearning_steps_minutes
            ),
            graduating_interval=settings.graduating_interval_days,
            easy_interval=settings.easy_interval_days,
            enable_fuzz=settings.fsrs_enable_fuzz,
        )
