"""
Review Queue Builder.

Turns the set of due cards into a bounded daily practice queue:
1. Pull due cards from the card scheduler
2. Enrich each with catalog metadata (unit, topic, tool requirement)
3. Score by urgency, weakness, recency and learning state
4. Interleave so topics and units do not cluster
5. Truncate to the target count

Also produces workload reports: a multi-day forecast, an adaptive daily
review count, tool-mix balancing and queue statistics.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from loguru import logger

from practice_scheduler.core.errors import MissingItemMetadataError
from practice_scheduler.core.models import (
    MasteryLevel,
    PerformanceTrend,
    PracticeItem,
    ReviewCard,
    UserProgress,
    days_since,
    utcnow,
)
from practice_scheduler.scheduling.card_scheduler import CardScheduler

# =============================================================================
# Configuration & Data Classes
# =============================================================================


@dataclass(frozen=True)
class QueueConfig:
    """Configuration for queue building and workload balancing."""

    # Daily review targets
    target_daily_reviews: int = 20
    min_daily_reviews: int = 10
    max_daily_reviews: int = 50

    # Prioritization points
    overdue_points: float = 35
    overdue_cap_days: int = 7
    weakness_points: float = 25
    strong_streak: int = 5  # Consecutive correct answers that count as strong
    variety_base_points: float = 10
    recency_points: float = 20
    recency_cap_days: int = 30
    learning_bonus: float = 5
    declining_bonus: float = 10

    # Interleaving
    max_consecutive_same_topic: int = 3
    max_consecutive_same_unit: int = 5
    topic_variety_bonus: float = 5
    unit_variety_bonus: float = 3

    # Workload sizing
    backlog_factor: float = 1.5
    catch_up_factor: float = 1.3
    seconds_per_review: int = 30
    capacity_window_days: int = 7

    # Tool mix (share of tool-required items)
    tool_required_share: float = 0.4

    # Weak classification
    weak_accuracy_threshold: float = 0.6

    # Raise on due cards without catalog metadata (False: log and drop)
    strict_enrichment: bool = True


@dataclass
class PrioritizedReview:
    """A due card enriched with catalog metadata and a priority score."""

    item_id: str
    card: ReviewCard
    unit: str
    topic: str
    tool_required: bool
    estimated_time_seconds: float
    priority: float = 0.0
    reasons: list[str] = field(default_factory=list)


@dataclass
class DailySchedule:
    """Reviews falling on one day."""

    date: str  # ISO date
    reviews: list[PrioritizedReview]
    total_count: int
    estimated_time_minutes: int
    unit_distribution: dict[str, int]
    topic_distribution: dict[str, int]
    difficulty_distribution: dict[str, int]  # overdue / weak / normal


@dataclass
class WeeklySchedule:
    """Multi-day workload forecast."""

    start_date: str
    end_date: str
    daily_schedules: list[DailySchedule]
    total_reviews: int
    average_per_day: float
    peak_day: str
    lightest_day: str


@dataclass
class ReviewStats:
    """Summary of a prioritized queue for dashboards."""

    total: int = 0
    overdue: int = 0
    weak: int = 0
    by_unit: dict[str, int] = field(default_factory=dict)
    by_topic: dict[str, int] = field(default_factory=dict)
    estimated_time_minutes: int = 0
    tool_required: int = 0
    tool_free: int = 0


# =============================================================================
# Queue Builder
# =============================================================================


class ReviewQueueBuilder:
    """
    Builds interleaved, workload-balanced practice queues.

    Key principles:
    1. Only due cards enter the daily queue
    2. Overdue, weak and declining items come first
    3. Never more than N consecutive picks from the same topic or unit
    4. Queue size follows the learner's recent capacity
    """

    def __init__(
        self,
        scheduler: CardScheduler | None = None,
        config: QueueConfig | None = None,
    ):
        """
        Initialize the queue builder.

        Args:
            scheduler: CardScheduler for due queries and card stats
            config: Queue configuration (uses defaults if None)
        """
        self.scheduler = scheduler or CardScheduler()
        self.config = config or QueueConfig()

    def build_daily_queue(
        self,
        all_items: Sequence[PracticeItem],
        user_progress: UserProgress,
        target_count: int | None = None,
        now: datetime | None = None,
    ) -> list[str]:
        """
        Build today's ordered practice queue.

        Args:
            all_items: Catalog entries for the learner's items
            user_progress: Snapshot holding the learner's review cards
            target_count: Maximum queue length (defaults to target_daily_reviews)
            now: Evaluation time

        Returns:
            Item ids in practice order

        Raises:
            MissingItemMetadataError: a due card has no catalog entry (strict mode)
        """
        now = now or utcnow()
        target = self.config.target_daily_reviews if target_count is None else target_count

        due_cards = self.scheduler.get_review_queue(user_progress.cards, now=now)
        if not due_cards:
            logger.debug("No cards due")
            return []

        enriched = self.enrich_reviews(due_cards, all_items)
        prioritized = self.prioritize_reviews(enriched, now=now)
        ordered = self.apply_interleaving(prioritized, target)

        logger.info(
            f"Built daily queue: {len(ordered)} of {len(due_cards)} due cards "
            f"(target {target})"
        )
        return [review.item_id for review in ordered]

    def enrich_reviews(
        self,
        cards: Sequence[ReviewCard],
        all_items: Sequence[PracticeItem],
    ) -> list[PrioritizedReview]:
        """
        Attach catalog metadata to each card.

        Raises:
            MissingItemMetadataError: unknown item ids, when strict_enrichment is on
        """
        catalog = {item.item_id: item for item in all_items}
        reviews: list[PrioritizedReview] = []
        missing: list[str] = []

        for card in cards:
            item = catalog.get(card.item_id)
            if item is None:
                missing.append(card.item_id)
                continue
            reviews.append(
                PrioritizedReview(
                    item_id=card.item_id,
                    card=card,
                    unit=item.unit,
                    topic=item.topic,
                    tool_required=item.tool_required,
                    estimated_time_seconds=item.estimated_time_seconds,
                )
            )

        if missing:
            logger.warning(f"{len(missing)} due card(s) have no catalog metadata: {missing[:5]}")
            if self.config.strict_enrichment:
                raise MissingItemMetadataError(missing)

        return reviews

    def prioritize_reviews(
        self,
        queue: Sequence[PrioritizedReview],
        now: datetime | None = None,
    ) -> list[PrioritizedReview]:
        """
        Score reviews and sort highest priority first.

        Points:
            overdue    min(days_overdue / 7, 1) × 35
            weakness   max(0, 1 - consecutive_correct / 5) × 25
            variety    10 (base; the interleaving pass adds the rest)
            recency    min(days_since_review / 30, 1) × 20, or 20 if never reviewed
            bonus      +5 while learning, otherwise +10 when declining

        Returns:
            New PrioritizedReview objects; the input is left untouched
        """
        cfg = self.config
        now = now or utcnow()
        scored: list[PrioritizedReview] = []

        for review in queue:
            stats = self.scheduler.get_card_stats(review.card, now=now)
            priority = 0.0
            reasons: list[str] = []

            if stats.is_overdue:
                priority += min(stats.days_overdue / cfg.overdue_cap_days, 1) * cfg.overdue_points
                reasons.append(f"{stats.days_overdue}d overdue")

            weakness = max(0.0, 1 - review.card.consecutive_correct / cfg.strong_streak)
            priority += weakness * cfg.weakness_points
            if weakness > 0.5:
                reasons.append("weak topic")

            priority += cfg.variety_base_points

            if review.card.last_reviewed is not None:
                elapsed = days_since(review.card.last_reviewed, now)
                priority += min(elapsed / cfg.recency_cap_days, 1) * cfg.recency_points
            else:
                priority += cfg.recency_points
                reasons.append("never reviewed")

            if stats.mastery_level is MasteryLevel.LEARNING:
                priority += cfg.learning_bonus
                reasons.append("learning")
            elif stats.performance_trend is PerformanceTrend.DECLINING:
                priority += cfg.declining_bonus
                reasons.append("declining")

            scored.append(replace(review, priority=priority, reasons=reasons))

        # sorted() is stable: equal priorities keep due order
        return sorted(scored, key=lambda r: r.priority, reverse=True)

    def apply_interleaving(
        self,
        reviews: Sequence[PrioritizedReview],
        target_count: int,
    ) -> list[PrioritizedReview]:
        """
        Greedy interleaving under topic and unit streak limits.

        At each step:
        - if the current topic streak hit its limit, only other topics are eligible
        - if the current unit streak hit its limit, only other units are eligible
        - among eligible reviews pick the highest priority plus variety bonus
          (+5 new topic, +3 new unit); ties go to the earlier review

        A limit is only waived when no eligible alternative remains.
        """
        cfg = self.config
        result: list[PrioritizedReview] = []
        remaining = list(reviews)

        last_topic: str | None = None
        last_unit: str | None = None
        topic_streak = 0
        unit_streak = 0

        while len(result) < target_count and remaining:
            eligible = remaining

            if topic_streak >= cfg.max_consecutive_same_topic:
                eligible = [r for r in eligible if r.topic != last_topic] or eligible
            if unit_streak >= cfg.max_consecutive_same_unit:
                eligible = [r for r in eligible if r.unit != last_unit] or eligible

            def variety_score(review: PrioritizedReview) -> float:
                score = review.priority
                if review.topic != last_topic:
                    score += cfg.topic_variety_bonus
                if review.unit != last_unit:
                    score += cfg.unit_variety_bonus
                return score

            selected = max(eligible, key=variety_score)
            remaining.remove(selected)
            result.append(selected)

            if selected.topic == last_topic:
                topic_streak += 1
            else:
                last_topic = selected.topic
                topic_streak = 1

            if selected.unit == last_unit:
                unit_streak += 1
            else:
                last_unit = selected.unit
                unit_streak = 1

        return result

    # =========================================================================
    # Workload Forecasting
    # =========================================================================

    def distribute_reviews(
        self,
        items: Sequence[PracticeItem],
        days_ahead: int = 7,
        now: datetime | None = None,
    ) -> WeeklySchedule:
        """
        Group items by their stored next review date over a horizon.

        Items already past due land in today's bucket and count as
        overdue. Items without a review date or beyond the horizon are
        left out.
        """
        now = now or utcnow()
        today = now.date()
        day_keys = [(today + timedelta(days=offset)).isoformat() for offset in range(days_ahead)]
        buckets: dict[str, list[PracticeItem]] = {key: [] for key in day_keys}

        for item in items:
            if item.next_review_date is None:
                continue
            review_day = max(item.next_review_date.date(), today).isoformat()
            if review_day in buckets:
                buckets[review_day].append(item)

        daily_schedules = [self._build_day_schedule(key, buckets[key], now) for key in day_keys]
        total_reviews = sum(day.total_count for day in daily_schedules)

        # Stable sort: ties resolve to the earliest peak and the latest lightest day
        by_count = sorted(daily_schedules, key=lambda d: d.total_count, reverse=True)
        end_date = today + timedelta(days=max(days_ahead - 1, 0))

        return WeeklySchedule(
            start_date=today.isoformat(),
            end_date=end_date.isoformat(),
            daily_schedules=daily_schedules,
            total_reviews=total_reviews,
            average_per_day=total_reviews / days_ahead if days_ahead > 0 else 0.0,
            peak_day=by_count[0].date if by_count else "",
            lightest_day=by_count[-1].date if by_count else "",
        )

    def _build_day_schedule(
        self,
        day: str,
        items: list[PracticeItem],
        now: datetime,
    ) -> DailySchedule:
        """Build the schedule for a single day."""
        unit_distribution: dict[str, int] = {}
        topic_distribution: dict[str, int] = {}
        difficulty_distribution = {"overdue": 0, "weak": 0, "normal": 0}
        total_seconds = 0.0
        reviews: list[PrioritizedReview] = []
        today = now.date()

        for item in items:
            unit_distribution[item.unit] = unit_distribution.get(item.unit, 0) + 1
            topic_distribution[item.topic] = topic_distribution.get(item.topic, 0) + 1
            total_seconds += item.estimated_time_seconds

            if item.practice_count > 0 and item.success_rate < self.config.weak_accuracy_threshold:
                difficulty_distribution["weak"] += 1
            elif item.next_review_date is not None and item.next_review_date.date() < today:
                difficulty_distribution["overdue"] += 1
            else:
                difficulty_distribution["normal"] += 1

            # Forecast card built from the catalog's scheduling snapshot
            card = ReviewCard(
                item_id=item.item_id,
                next_review=item.next_review_date or now,
                ease_factor=item.ease_factor or self.scheduler.config.initial_ease_factor,
                interval=item.interval or 0,
            )
            reviews.append(
                PrioritizedReview(
                    item_id=item.item_id,
                    card=card,
                    unit=item.unit,
                    topic=item.topic,
                    tool_required=item.tool_required,
                    estimated_time_seconds=item.estimated_time_seconds,
                )
            )

        return DailySchedule(
            date=day,
            reviews=reviews,
            total_count=len(items),
            estimated_time_minutes=math.ceil(total_seconds / 60),
            unit_distribution=unit_distribution,
            topic_distribution=topic_distribution,
            difficulty_distribution=difficulty_distribution,
        )

    def calculate_optimal_review_count(
        self,
        user_progress: UserProgress,
        due_count: int,
    ) -> int:
        """
        Recommended review count for today, always within [min, max].

        Steps:
        1. Start from the daily target
        2. Narrow to recent capacity (average daily session time / 30s per review)
        3. If the backlog exceeds 1.5 × target, raise to ceil(1.3 × target)
        4. If fewer than the minimum are due, follow the due count
        5. Clamp to [min_daily_reviews, max_daily_reviews]
        """
        cfg = self.config

        recent_sessions = user_progress.sessions[-cfg.capacity_window_days:]
        total_seconds = sum(s.duration_seconds for s in recent_sessions)
        avg_seconds_per_day = total_seconds / cfg.capacity_window_days
        estimated_capacity = math.floor(avg_seconds_per_day / cfg.seconds_per_review)

        optimal = cfg.target_daily_reviews
        if estimated_capacity > 0:
            optimal = min(optimal, estimated_capacity)

        if due_count > cfg.target_daily_reviews * cfg.backlog_factor:
            optimal = min(
                cfg.max_daily_reviews,
                math.ceil(cfg.target_daily_reviews * cfg.catch_up_factor),
            )

        if due_count < cfg.min_daily_reviews:
            optimal = due_count

        result = max(cfg.min_daily_reviews, min(cfg.max_daily_reviews, optimal))
        logger.debug(
            f"Optimal review count: {result} (due={due_count}, capacity={estimated_capacity})"
        )
        return result

    def balance_calculator_mix(
        self,
        reviews: Sequence[PrioritizedReview],
    ) -> list[PrioritizedReview]:
        """
        Interleave tool-required and tool-free reviews toward a 40/60 split.

        Position i takes a tool-required review while fewer than
        round((i + 1) × share) have been placed. When one pool runs out the
        other fills the rest. Relative order inside each pool is kept.
        """
        tool_pool = [r for r in reviews if r.tool_required]
        free_pool = [r for r in reviews if not r.tool_required]
        share = self.config.tool_required_share

        result: list[PrioritizedReview] = []
        tool_index = 0
        free_index = 0

        for position in range(len(reviews)):
            tool_left = tool_index < len(tool_pool)
            free_left = free_index < len(free_pool)
            wanted_tool = int((position + 1) * share + 0.5)

            if tool_left and (not free_left or tool_index < wanted_tool):
                result.append(tool_pool[tool_index])
                tool_index += 1
            else:
                result.append(free_pool[free_index])
                free_index += 1

        return result

    def get_review_stats(
        self,
        reviews: Sequence[PrioritizedReview],
        now: datetime | None = None,
    ) -> ReviewStats:
        """
        Counts and distributions for a queue.

        A review counts as weak when consecutive_correct / 5 is below the
        weak accuracy threshold.
        """
        cfg = self.config
        now = now or utcnow()
        stats = ReviewStats(total=len(reviews))
        total_seconds = 0.0

        for review in reviews:
            if self.scheduler.get_card_stats(review.card, now=now).is_overdue:
                stats.overdue += 1

            if review.card.consecutive_correct / cfg.strong_streak < cfg.weak_accuracy_threshold:
                stats.weak += 1

            stats.by_unit[review.unit] = stats.by_unit.get(review.unit, 0) + 1
            stats.by_topic[review.topic] = stats.by_topic.get(review.topic, 0) + 1
            total_seconds += review.estimated_time_seconds

            if review.tool_required:
                stats.tool_required += 1
            else:
                stats.tool_free += 1

        stats.estimated_time_minutes = math.ceil(total_seconds / 60)
        return stats
