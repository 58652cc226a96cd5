"""
Scheduling engine.

Components:
- CardScheduler: SM-2 spaced repetition
- DifficultyCalculator: Adaptive difficulty and recommendations
- ReviewQueueBuilder: Prioritization, interleaving and workload forecasts
"""

from .card_scheduler import CardScheduler, CardStats, ReviewResult, SchedulerConfig
from .difficulty import (
    DifficultyCalculator,
    DifficultyConfig,
    DifficultyRange,
    DifficultyRecommendation,
    RecommendationFilters,
    TopicPerformance,
)
from .review_queue import (
    DailySchedule,
    PrioritizedReview,
    QueueConfig,
    ReviewQueueBuilder,
    ReviewStats,
    WeeklySchedule,
)

__all__ = [
    # Memory model
    "CardScheduler",
    "SchedulerConfig",
    "ReviewResult",
    "CardStats",
    # Difficulty
    "DifficultyCalculator",
    "DifficultyConfig",
    "DifficultyRecommendation",
    "DifficultyRange",
    "RecommendationFilters",
    "TopicPerformance",
    # Queues
    "ReviewQueueBuilder",
    "QueueConfig",
    "PrioritizedReview",
    "DailySchedule",
    "WeeklySchedule",
    "ReviewStats",
]
