"""
Core record types for the practice scheduler.

The engine owns ReviewCard; everything else here is supplied by the
caller (attempt reporter, item catalog, progress store) and treated as
read-only context.

All timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def days_since(moment: datetime, now: datetime) -> int:
    """Whole days elapsed from ``moment`` to ``now`` (floored)."""
    return math.floor((now - moment).total_seconds() / SECONDS_PER_DAY)


def days_until(moment: datetime, now: datetime) -> int:
    """Days from ``now`` until ``moment``, rounded up (negative when past)."""
    return math.ceil((moment - now).total_seconds() / SECONDS_PER_DAY)


# =============================================================================
# Enumerations
# =============================================================================


class DifficultyTier(str, Enum):
    """Three ordered difficulty tiers."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def rank(self) -> int:
        """Numeric position: 1 (easy) to 3 (hard)."""
        return _TIER_RANKS[self]

    @classmethod
    def from_rank(cls, rank: int) -> DifficultyTier:
        """Tier for a numeric rank, clamped to 1-3."""
        clamped = max(1, min(3, rank))
        return next(tier for tier, r in _TIER_RANKS.items() if r == clamped)


_TIER_RANKS = {
    DifficultyTier.EASY: 1,
    DifficultyTier.MEDIUM: 2,
    DifficultyTier.HARD: 3,
}


class MasteryLevel(str, Enum):
    """Coarse memory-strength bucket derived from a card's interval."""

    LEARNING = "learning"
    YOUNG = "young"
    MATURE = "mature"
    MASTERED = "mastered"


class PerformanceTrend(str, Enum):
    """Short-term direction of a learner's results."""

    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


# =============================================================================
# Engine-owned state
# =============================================================================


@dataclass(frozen=True)
class ReviewCard:
    """
    Spaced-repetition state for one practice item.

    Immutable: every review produces a replacement card.
    """

    item_id: str
    next_review: datetime
    ease_factor: float = 2.5
    interval: int = 0  # Days
    repetitions: int = 0  # Consecutive successful reviews since last reset
    last_reviewed: datetime | None = None
    consecutive_correct: int = 0
    consecutive_incorrect: int = 0

    def is_due(self, now: datetime | None = None) -> bool:
        """True when the next review time has been reached."""
        return self.next_review <= (now or utcnow())


# =============================================================================
# Caller-supplied records
# =============================================================================


@dataclass(frozen=True)
class AttemptEvent:
    """One completed practice attempt, as reported by the session flow."""

    item_id: str
    correct: bool
    time_spent_seconds: float
    expected_time_seconds: float = 60.0
    hints_used: int = 0
    timestamp: datetime | None = None


@dataclass
class PracticeItem:
    """Catalog metadata for a practice item."""

    item_id: str
    unit: str
    topic: str
    difficulty: DifficultyTier = DifficultyTier.MEDIUM
    estimated_time_seconds: float = 60.0
    tool_required: bool = False

    # Practice history maintained by the catalog
    practice_count: int = 0
    success_rate: float = 0.0
    last_practiced: datetime | None = None

    # Scheduling snapshot used for workload forecasts
    next_review_date: datetime | None = None
    ease_factor: float | None = None
    interval: int | None = None


@dataclass
class UnitProgress:
    """Per-unit learner progress."""

    unit: str
    mastery: float = 0.0  # 0-1
    weak_topics: list[str] = field(default_factory=list)
    topic_mastery: dict[str, float] = field(default_factory=dict)
    problems_attempted: int = 0
    problems_correct: int = 0
    last_practiced: datetime | None = None


@dataclass
class PracticeSession:
    """A completed practice session (used to estimate daily capacity)."""

    started_at: datetime
    duration_seconds: float
    item_ids: list[str] = field(default_factory=list)
    results: list[bool] = field(default_factory=list)
    completed: bool = True


@dataclass
class UserProgress:
    """
    Snapshot of one learner's progress.

    Owned and persisted by the progress store; the engine only reads it.
    """

    cards: list[ReviewCard] = field(default_factory=list)
    units: dict[str, UnitProgress] = field(default_factory=dict)
    sessions: list[PracticeSession] = field(default_factory=list)

    def unit_progress(self, unit: str) -> UnitProgress | None:
        return self.units.get(unit)

    def card_for(self, item_id: str) -> ReviewCard | None:
        return next((c for c in self.cards if c.item_id == item_id), None)
