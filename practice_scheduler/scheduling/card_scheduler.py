"""
SM-2 Card Scheduler.

Owns the per-item memory model:
- SM-2 update rule for ease factor, interval and repetitions
- Conversion of attempt results to quality ratings
- Due-card queries and per-card statistics

Quality Scale:
0 - Incorrect, two or more hints used
1 - Incorrect, one hint used
2 - Incorrect, no hints
3 - Correct, took more than 150% of the expected time
4 - Correct, took 100-150% of the expected time
5 - Correct, within the expected time

All operations are pure: cards are never mutated, a review returns a
replacement card.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from practice_scheduler.core.errors import InvalidAttemptError
from practice_scheduler.core.models import (
    AttemptEvent,
    MasteryLevel,
    PerformanceTrend,
    ReviewCard,
    days_until,
    utcnow,
)

# =============================================================================
# Configuration & Results
# =============================================================================


@dataclass(frozen=True)
class SchedulerConfig:
    """Configuration for the SM-2 card scheduler."""

    initial_ease_factor: float = 2.5
    minimum_ease_factor: float = 1.3
    first_interval: int = 1  # Days after the first successful review
    second_interval: int = 6  # Days after the second
    quality_threshold: int = 3  # Below this = failed recall
    default_expected_time_seconds: float = 60.0

    # Quality boundaries on time_spent / expected_time
    slow_time_ratio: float = 1.5
    normal_time_ratio: float = 1.0

    # Mastery buckets (interval days)
    young_max_interval: int = 21
    mature_max_interval: int = 90

    # consecutive_correct - consecutive_incorrect needed to call a trend
    trend_threshold: int = 2


@dataclass(frozen=True)
class ReviewResult:
    """Outcome of applying one attempt to a card."""

    card: ReviewCard
    quality: int
    was_correct: bool
    interval_changed: int  # Delta in days
    ease_factor_changed: float


@dataclass(frozen=True)
class CardStats:
    """Derived, read-only view of a card's schedule and strength."""

    is_overdue: bool
    days_overdue: int
    next_review_in: int  # Days, 0 when due
    mastery_level: MasteryLevel
    performance_trend: PerformanceTrend


# =============================================================================
# Scheduler
# =============================================================================


class CardScheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    Each card carries:
    - Ease Factor (EF): growth multiplier for intervals (2.5 default, min 1.3)
    - Interval: days until next exposure
    - Repetitions: consecutive successful reviews since the last lapse
    """

    def __init__(self, config: SchedulerConfig | None = None):
        """
        Initialize SM-2 scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SchedulerConfig()

    def initialize_card(self, item_id: str, now: datetime | None = None) -> ReviewCard:
        """
        Create a fresh card, due immediately.

        Does not check for an existing card; that is the caller's job.
        """
        return ReviewCard(
            item_id=item_id,
            next_review=now or utcnow(),
            ease_factor=self.config.initial_ease_factor,
            interval=0,
            repetitions=0,
            last_reviewed=None,
            consecutive_correct=0,
            consecutive_incorrect=0,
        )

    def calculate_quality(
        self,
        correct: bool,
        time_spent_seconds: float,
        expected_time_seconds: float | None = None,
        hints_used: int = 0,
    ) -> int:
        """
        Convert an attempt to an SM-2 quality rating.

        Args:
            correct: Whether the answer was correct
            time_spent_seconds: Time taken to answer
            expected_time_seconds: Expected time for the item
            hints_used: Number of hints revealed

        Returns:
            Quality 0-5

        Raises:
            InvalidAttemptError: negative time or hints, or non-positive expected time
        """
        expected = (
            self.config.default_expected_time_seconds
            if expected_time_seconds is None
            else expected_time_seconds
        )
        if time_spent_seconds < 0:
            raise InvalidAttemptError(f"time_spent_seconds must be >= 0, got {time_spent_seconds}")
        if expected <= 0:
            raise InvalidAttemptError(f"expected_time_seconds must be > 0, got {expected}")
        if hints_used < 0:
            raise InvalidAttemptError(f"hints_used must be >= 0, got {hints_used}")

        if not correct:
            if hints_used == 0:
                return 2  # Partial recall
            if hints_used == 1:
                return 1
            return 0  # Needed heavy help

        time_ratio = time_spent_seconds / expected
        if time_ratio > self.config.slow_time_ratio:
            return 3  # Serious difficulty
        if time_ratio > self.config.normal_time_ratio:
            return 4  # Some hesitation
        return 5

    def calculate_next_review(
        self,
        card: ReviewCard,
        quality: int,
        now: datetime | None = None,
    ) -> ReviewCard:
        """
        Apply the SM-2 update for a quality rating.

        Args:
            card: Current card state
            quality: Quality rating (0-5)
            now: Review time (defaults to the current UTC time)

        Returns:
            Replacement card with new interval, ease factor and next_review
        """
        if not 0 <= quality <= 5:
            raise ValueError(f"quality must be between 0 and 5, got {quality}")

        now = now or utcnow()

        # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        ef_delta = 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
        new_ef = max(self.config.minimum_ease_factor, card.ease_factor + ef_delta)

        if quality < self.config.quality_threshold:
            # Failed - reset to beginning
            new_repetitions = 0
            new_interval = self.config.first_interval
            consecutive_correct = 0
            consecutive_incorrect = card.consecutive_incorrect + 1
        else:
            new_repetitions = card.repetitions + 1

            if new_repetitions == 1:
                new_interval = self.config.first_interval
            elif new_repetitions == 2:
                new_interval = self.config.second_interval
            else:
                new_interval = round(card.interval * new_ef)

            consecutive_correct = card.consecutive_correct + 1
            consecutive_incorrect = 0

        return ReviewCard(
            item_id=card.item_id,
            next_review=now + timedelta(days=new_interval),
            ease_factor=new_ef,
            interval=new_interval,
            repetitions=new_repetitions,
            last_reviewed=now,
            consecutive_correct=consecutive_correct,
            consecutive_incorrect=consecutive_incorrect,
        )

    def update_progress(
        self,
        card: ReviewCard,
        correct: bool,
        time_spent_seconds: float,
        expected_time_seconds: float | None = None,
        hints_used: int = 0,
        now: datetime | None = None,
    ) -> ReviewResult:
        """
        Rate an attempt and apply it to the card.

        Returns:
            ReviewResult with the replacement card, quality and deltas
        """
        quality = self.calculate_quality(
            correct, time_spent_seconds, expected_time_seconds, hints_used
        )
        updated = self.calculate_next_review(card, quality, now=now)

        logger.debug(
            f"Card {card.item_id}: q={quality}, interval {card.interval}->{updated.interval}d, "
            f"EF {card.ease_factor:.2f}->{updated.ease_factor:.2f}"
        )

        return ReviewResult(
            card=updated,
            quality=quality,
            was_correct=correct,
            interval_changed=updated.interval - card.interval,
            ease_factor_changed=updated.ease_factor - card.ease_factor,
        )

    def record_attempt(
        self,
        card: ReviewCard,
        attempt: AttemptEvent,
        now: datetime | None = None,
    ) -> ReviewResult:
        """update_progress driven by an AttemptEvent."""
        return self.update_progress(
            card,
            attempt.correct,
            attempt.time_spent_seconds,
            attempt.expected_time_seconds,
            attempt.hints_used,
            now=now or attempt.timestamp,
        )

    def get_review_queue(
        self,
        cards: Iterable[ReviewCard],
        now: datetime | None = None,
    ) -> list[ReviewCard]:
        """Cards whose next review time has been reached. Order is not meaningful."""
        now = now or utcnow()
        return [card for card in cards if card.next_review <= now]

    @staticmethod
    def get_daily_review_count(queue: list[ReviewCard]) -> int:
        """Number of reviews in a due queue."""
        return len(queue)

    def get_card_stats(self, card: ReviewCard, now: datetime | None = None) -> CardStats:
        """Overdue status, mastery bucket and trend for a card."""
        now = now or utcnow()
        days_diff = days_until(card.next_review, now)

        if card.repetitions == 0:
            mastery = MasteryLevel.LEARNING
        elif card.interval < self.config.young_max_interval:
            mastery = MasteryLevel.YOUNG
        elif card.interval <= self.config.mature_max_interval:
            mastery = MasteryLevel.MATURE
        else:
            mastery = MasteryLevel.MASTERED

        balance = card.consecutive_correct - card.consecutive_incorrect
        if balance >= self.config.trend_threshold:
            trend = PerformanceTrend.IMPROVING
        elif balance <= -self.config.trend_threshold:
            trend = PerformanceTrend.DECLINING
        else:
            trend = PerformanceTrend.STABLE

        return CardStats(
            is_overdue=days_diff < 0,
            days_overdue=abs(min(0, days_diff)),
            next_review_in=max(0, days_diff),
            mastery_level=mastery,
            performance_trend=trend,
        )

    def bulk_update_cards(
        self,
        cards: Iterable[ReviewCard],
        updates: Mapping[str, int | AttemptEvent],
        now: datetime | None = None,
    ) -> list[ReviewCard]:
        """
        Apply many reviews in one pass.

        Args:
            cards: Current cards
            updates: item_id -> quality rating or AttemptEvent
            now: Review time for quality updates and for attempts without a timestamp

        Returns:
            Cards in input order; those without an update are returned unchanged
        """
        now = now or utcnow()
        result: list[ReviewCard] = []
        applied = 0

        for card in cards:
            update = updates.get(card.item_id)
            if update is None:
                result.append(card)
                continue

            if isinstance(update, AttemptEvent):
                result.append(self.record_attempt(card, update, now=update.timestamp or now).card)
            else:
                result.append(self.calculate_next_review(card, update, now=now))
            applied += 1

        logger.info(f"Bulk update applied {applied} of {len(updates)} reviews")
        return result

    def get_review_distribution(
        self,
        cards: Iterable[ReviewCard],
        days_ahead: int = 7,
        now: datetime | None = None,
    ) -> dict[str, int]:
        """
        Count reviews falling on each of the next ``days_ahead`` days.

        Returns:
            ISO date -> review count. Cards scheduled outside the horizon
            get their own keys; overdue cards count toward today.
        """
        now = now or utcnow()
        today = now.date()
        distribution = {
            (today + timedelta(days=offset)).isoformat(): 0 for offset in range(days_ahead)
        }

        for card in cards:
            review_day = max(card.next_review.date(), today).isoformat()
            distribution[review_day] = distribution.get(review_day, 0) + 1

        return distribution
