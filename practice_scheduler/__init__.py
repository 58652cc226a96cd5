"""
Practice Scheduler: spaced repetition and adaptive difficulty.

Decides what a learner should practice, when, and at what difficulty:
- CardScheduler: SM-2 memory model per practice item
- DifficultyCalculator: tier adjustment and next-problem recommendation
- ReviewQueueBuilder: interleaved, workload-balanced daily queues
- PracticeService: wiring to the SQLite progress store and item catalog
"""

from practice_scheduler.scheduling import (
    CardScheduler,
    DifficultyCalculator,
    ReviewQueueBuilder,
)
from practice_scheduler.service import PracticeService

__version__ = "1.0.0"

__all__ = [
    "CardScheduler",
    "DifficultyCalculator",
    "ReviewQueueBuilder",
    "PracticeService",
]
