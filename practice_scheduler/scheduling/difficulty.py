"""
Adaptive Difficulty Calculator.

Recommends a difficulty tier per item from attempt history, scores
candidate items for "what to practice next", and summarizes topic
performance.

Signals:
- Accuracy (overall and over the last few attempts)
- Time on task relative to the item's estimate
- Hint usage
- Unit mastery and weak-topic flags from the learner's progress
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from practice_scheduler.core.models import (
    AttemptEvent,
    DifficultyTier,
    PerformanceTrend,
    PracticeItem,
    UserProgress,
    days_since,
    utcnow,
)

# =============================================================================
# Configuration & Results
# =============================================================================


@dataclass(frozen=True)
class DifficultyConfig:
    """Thresholds and weights for difficulty decisions."""

    # Accuracy thresholds for single-shot adjustment
    high_accuracy: float = 0.85
    low_accuracy: float = 0.5
    no_hint_min_accuracy: float = 0.8

    # Time performance thresholds (time spent / estimated time)
    fast_ratio: float = 0.8
    slow_ratio: float = 1.5

    # Hint usage that counts as "frequently needs hints"
    heavy_hint_count: float = 2

    # Score needed to move one tier
    adjustment_threshold: float = 1.5

    # History-based tier calculation
    min_attempts: int = 3
    recent_window: int = 5
    trend_band: float = 0.1
    hint_penalty: float = 0.2
    trend_bonus: float = 0.3
    easy_below: float = 1.5
    medium_below: float = 2.5

    # Topic analysis
    weak_item_accuracy: float = 0.6
    strong_item_accuracy: float = 0.85
    min_attempts_to_classify: int = 2
    full_weight_attempts: int = 5

    # Recommendation points
    unit_gap_points: float = 30
    weak_topic_points: float = 25
    practice_points: float = 20
    practice_decay: float = 2
    success_points: float = 15
    recency_points: float = 10

    # Unit mastery bands for personalized targets
    low_mastery: float = 0.3
    building_mastery: float = 0.6


@dataclass(frozen=True)
class ItemPerformance:
    """Aggregated history for a single item."""

    item_id: str
    attempts: int
    correct_attempts: int
    accuracy: float
    average_time_seconds: float
    average_hints_used: float
    recent_accuracy: float
    trend: PerformanceTrend


@dataclass(frozen=True)
class DifficultyRecommendation:
    """Result of a single-shot difficulty review."""

    current: DifficultyTier
    recommended: DifficultyTier
    confidence: float  # 0-1
    reason: str
    should_adjust: bool


@dataclass(frozen=True)
class TopicPerformance:
    """Learner performance across all items of a topic."""

    topic: str
    total_attempts: int
    accuracy: float
    average_time: float
    mastery_level: float  # 0-1
    weak_points: list[str] = field(default_factory=list)
    strong_points: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RecommendationFilters:
    """Optional constraints for recommend_next_problem."""

    unit: str | None = None
    topic: str | None = None
    max_difficulty: DifficultyTier | None = None


@dataclass(frozen=True)
class DifficultyRange:
    """Inclusive tier range."""

    min: DifficultyTier
    max: DifficultyTier


# =============================================================================
# Calculator
# =============================================================================


class DifficultyCalculator:
    """
    Adaptive difficulty recommendations.

    Stateless apart from its configuration; every method works on the
    inputs it is given.
    """

    def __init__(self, config: DifficultyConfig | None = None):
        self.config = config or DifficultyConfig()

    # ------------------------------------------------------------------
    # Per-item tier
    # ------------------------------------------------------------------

    def calculate_difficulty(
        self,
        item: PracticeItem,
        attempt_history: Iterable[AttemptEvent],
    ) -> DifficultyTier:
        """
        Recommended tier for an item given the learner's attempts.

        With fewer than ``min_attempts`` attempts on the item the item's
        own tier is returned unchanged.
        """
        attempts = [a for a in attempt_history if a.item_id == item.item_id]
        if len(attempts) < self.config.min_attempts:
            return item.difficulty

        performance = self.analyze_performance(attempts)
        score = self._difficulty_score(performance)

        if score < self.config.easy_below:
            tier = DifficultyTier.EASY
        elif score < self.config.medium_below:
            tier = DifficultyTier.MEDIUM
        else:
            tier = DifficultyTier.HARD

        logger.debug(
            f"Item {item.item_id}: accuracy={performance.accuracy:.2f}, "
            f"trend={performance.trend.value}, score={score:.2f} -> {tier.value}"
        )
        return tier

    def analyze_performance(self, attempts: Sequence[AttemptEvent]) -> ItemPerformance:
        """Aggregate accuracy, timing, hints and trend for one item's attempts."""
        total = len(attempts)
        if total == 0:
            return ItemPerformance(
                item_id="",
                attempts=0,
                correct_attempts=0,
                accuracy=0.0,
                average_time_seconds=0.0,
                average_hints_used=0.0,
                recent_accuracy=0.0,
                trend=PerformanceTrend.STABLE,
            )

        correct = sum(1 for a in attempts if a.correct)
        accuracy = correct / total
        average_time = sum(a.time_spent_seconds for a in attempts) / total
        average_hints = sum(a.hints_used for a in attempts) / total

        recent = attempts[-self.config.recent_window:]
        recent_accuracy = sum(1 for a in recent if a.correct) / len(recent)

        if recent_accuracy > accuracy + self.config.trend_band:
            trend = PerformanceTrend.IMPROVING
        elif recent_accuracy < accuracy - self.config.trend_band:
            trend = PerformanceTrend.DECLINING
        else:
            trend = PerformanceTrend.STABLE

        return ItemPerformance(
            item_id=attempts[0].item_id,
            attempts=total,
            correct_attempts=correct,
            accuracy=accuracy,
            average_time_seconds=average_time,
            average_hints_used=average_hints,
            recent_accuracy=recent_accuracy,
            trend=trend,
        )

    def _difficulty_score(self, performance: ItemPerformance) -> float:
        """
        Map performance to a 1-3 score (higher = harder tier).

        Formula:
            1 + 2 × accuracy
            - hint_penalty × average hints
            ± trend_bonus for improving / declining
        """
        score = 1 + performance.accuracy * 2
        score -= performance.average_hints_used * self.config.hint_penalty

        if performance.trend is PerformanceTrend.IMPROVING:
            score += self.config.trend_bonus
        elif performance.trend is PerformanceTrend.DECLINING:
            score -= self.config.trend_bonus

        return max(1.0, min(3.0, score))

    def adjust_difficulty_based_on_performance(
        self,
        item: PracticeItem,
        accuracy: float,
        average_time: float,
        hints_used: float = 0,
    ) -> DifficultyRecommendation:
        """
        Single-shot tier review from summary statistics.

        Each signal adds to an adjustment score:
        - accuracy >= high (+1) / <= low (-1)
        - time ratio <= fast (+0.5) / >= slow (-0.5)
        - no hints with decent accuracy (+0.5) / heavy hints (-0.5)

        A score of ±adjustment_threshold moves one tier, clamped to the
        valid range.
        """
        cfg = self.config
        current = item.difficulty
        adjustment_score = 0.0
        reasons: list[str] = []

        if accuracy >= cfg.high_accuracy:
            adjustment_score += 1
            reasons.append("High accuracy")
        elif accuracy <= cfg.low_accuracy:
            adjustment_score -= 1
            reasons.append("Low accuracy")

        if item.estimated_time_seconds > 0:
            time_ratio = average_time / item.estimated_time_seconds
            if time_ratio <= cfg.fast_ratio:
                adjustment_score += 0.5
                reasons.append("Completing quickly")
            elif time_ratio >= cfg.slow_ratio:
                adjustment_score -= 0.5
                reasons.append("Taking too long")

        if hints_used == 0 and accuracy >= cfg.no_hint_min_accuracy:
            adjustment_score += 0.5
            reasons.append("No hints needed")
        elif hints_used >= cfg.heavy_hint_count:
            adjustment_score -= 0.5
            reasons.append("Frequently needs hints")

        rank = current.rank
        if adjustment_score >= cfg.adjustment_threshold:
            rank += 1
        elif adjustment_score <= -cfg.adjustment_threshold:
            rank -= 1
        recommended = DifficultyTier.from_rank(rank)

        return DifficultyRecommendation(
            current=current,
            recommended=recommended,
            confidence=min(1.0, abs(adjustment_score) / 2),
            reason=", ".join(reasons),
            should_adjust=recommended is not current,
        )

    # ------------------------------------------------------------------
    # Next-item recommendation
    # ------------------------------------------------------------------

    def recommend_next_problem(
        self,
        user_progress: UserProgress,
        candidates: Sequence[PracticeItem],
        filters: RecommendationFilters | None = None,
        now: datetime | None = None,
    ) -> PracticeItem | None:
        """
        Highest-scoring candidate after filtering, or None.

        Ties keep the candidates' input order.
        """
        if not candidates:
            return None

        filtered = list(candidates)
        if filters is not None:
            if filters.unit:
                filtered = [p for p in filtered if p.unit == filters.unit]
            if filters.topic:
                filtered = [p for p in filtered if p.topic == filters.topic]
            if filters.max_difficulty is not None:
                max_rank = filters.max_difficulty.rank
                filtered = [p for p in filtered if p.difficulty.rank <= max_rank]

        if not filtered:
            logger.debug("No candidates left after filtering")
            return None

        now = now or utcnow()
        return max(filtered, key=lambda item: self.score_item(item, user_progress, now))

    def score_item(
        self,
        item: PracticeItem,
        user_progress: UserProgress,
        now: datetime | None = None,
    ) -> float:
        """
        Practice-priority score (higher = practice sooner).

        Points:
            unit gap     (1 - unit mastery) × 30
            weak topic   25 if the topic is flagged weak for its unit
            practice     max(0, 20 - 2 × practice_count)
            success      (1 - success_rate) × 15
            recency      days since last practice, capped at 10 (10 if never)
        """
        cfg = self.config
        now = now or utcnow()
        score = 0.0

        unit_progress = user_progress.unit_progress(item.unit)
        if unit_progress is not None:
            score += (1 - unit_progress.mastery) * cfg.unit_gap_points
            if item.topic in unit_progress.weak_topics:
                score += cfg.weak_topic_points

        score += max(0.0, cfg.practice_points - item.practice_count * cfg.practice_decay)
        score += (1 - item.success_rate) * cfg.success_points

        if item.last_practiced is not None:
            score += min(days_since(item.last_practiced, now), cfg.recency_points)
        else:
            score += cfg.recency_points

        return score

    # ------------------------------------------------------------------
    # Topic analysis
    # ------------------------------------------------------------------

    def analyze_topic_performance(
        self,
        items: Sequence[PracticeItem],
        attempts: Iterable[AttemptEvent],
    ) -> TopicPerformance:
        """
        Accuracy, timing, mastery and weak/strong items for a topic.

        Items need at least ``min_attempts_to_classify`` attempts to be
        called weak or strong.
        """
        if not items:
            return TopicPerformance(
                topic="",
                total_attempts=0,
                accuracy=0.0,
                average_time=0.0,
                mastery_level=0.0,
            )

        cfg = self.config
        item_ids = {item.item_id for item in items}
        by_item: dict[str, list[AttemptEvent]] = defaultdict(list)
        for attempt in attempts:
            if attempt.item_id in item_ids:
                by_item[attempt.item_id].append(attempt)

        topic_attempts = [a for group in by_item.values() for a in group]
        total = len(topic_attempts)
        correct = sum(1 for a in topic_attempts if a.correct)
        accuracy = correct / total if total > 0 else 0.0
        average_time = (
            sum(a.time_spent_seconds for a in topic_attempts) / total if total > 0 else 0.0
        )

        weak_points: list[str] = []
        strong_points: list[str] = []
        weighted_mastery = 0.0

        for item in items:
            item_attempts = by_item.get(item.item_id, [])
            count = len(item_attempts)
            if count == 0:
                continue

            item_accuracy = sum(1 for a in item_attempts if a.correct) / count
            # More attempts = more confidence in the accuracy
            weighted_mastery += item_accuracy * min(1.0, count / cfg.full_weight_attempts)

            if count >= cfg.min_attempts_to_classify:
                if item_accuracy < cfg.weak_item_accuracy:
                    weak_points.append(item.item_id)
                elif item_accuracy >= cfg.strong_item_accuracy:
                    strong_points.append(item.item_id)

        return TopicPerformance(
            topic=items[0].topic,
            total_attempts=total,
            accuracy=accuracy,
            average_time=average_time,
            mastery_level=weighted_mastery / len(items),
            weak_points=weak_points,
            strong_points=strong_points,
        )

    def get_personalized_difficulty_targets(
        self,
        user_progress: UserProgress,
    ) -> dict[str, DifficultyRange]:
        """
        Tier range per unit, banded by unit mastery.

        Every mastery from ``building_mastery`` up, including the top
        band, maps to medium-hard.
        """
        cfg = self.config
        targets: dict[str, DifficultyRange] = {}

        for unit, progress in user_progress.units.items():
            mastery = progress.mastery
            if mastery < cfg.low_mastery:
                targets[unit] = DifficultyRange(DifficultyTier.EASY, DifficultyTier.EASY)
            elif mastery < cfg.building_mastery:
                targets[unit] = DifficultyRange(DifficultyTier.EASY, DifficultyTier.MEDIUM)
            else:
                targets[unit] = DifficultyRange(DifficultyTier.MEDIUM, DifficultyTier.HARD)

        return targets
