"""
Core record types, wire records and exceptions.

Components:
- models: ReviewCard, AttemptEvent, PracticeItem and progress snapshots
- records: camelCase pydantic records for persistence
- errors: exception hierarchy
"""

from .errors import (
    ContractViolationError,
    InvalidAttemptError,
    MissingItemMetadataError,
    PracticeSchedulerError,
    ProgressStoreError,
)
from .models import (
    AttemptEvent,
    DifficultyTier,
    MasteryLevel,
    PerformanceTrend,
    PracticeItem,
    PracticeSession,
    ReviewCard,
    UnitProgress,
    UserProgress,
)
from .records import PracticeItemRecord, ReviewCardRecord, card_from_dict, card_to_dict

__all__ = [
    # Records
    "ReviewCard",
    "AttemptEvent",
    "PracticeItem",
    "UnitProgress",
    "PracticeSession",
    "UserProgress",
    # Enumerations
    "DifficultyTier",
    "MasteryLevel",
    "PerformanceTrend",
    # Serialization
    "ReviewCardRecord",
    "PracticeItemRecord",
    "card_to_dict",
    "card_from_dict",
    # Errors
    "PracticeSchedulerError",
    "ContractViolationError",
    "MissingItemMetadataError",
    "InvalidAttemptError",
    "ProgressStoreError",
]
