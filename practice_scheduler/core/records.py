"""
Wire records for persisted progress and catalog data.

Stored progress uses camelCase field names (itemId, easeFactor, ...);
these pydantic models convert between that shape and the engine's
dataclasses.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from practice_scheduler.core.models import DifficultyTier, PracticeItem, ReviewCard


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReviewCardRecord(_CamelModel):
    """Serialized ReviewCard."""

    item_id: str
    ease_factor: float = Field(default=2.5, ge=1.3)
    interval: int = Field(default=0, ge=0)
    repetitions: int = Field(default=0, ge=0)
    next_review: UtcDatetime
    last_reviewed: UtcDatetime | None = None
    consecutive_correct: int = 0
    consecutive_incorrect: int = 0

    @classmethod
    def from_card(cls, card: ReviewCard) -> ReviewCardRecord:
        return cls(
            item_id=card.item_id,
            ease_factor=card.ease_factor,
            interval=card.interval,
            repetitions=card.repetitions,
            next_review=card.next_review,
            last_reviewed=card.last_reviewed,
            consecutive_correct=card.consecutive_correct,
            consecutive_incorrect=card.consecutive_incorrect,
        )

    def to_card(self) -> ReviewCard:
        return ReviewCard(
            item_id=self.item_id,
            next_review=self.next_review,
            ease_factor=self.ease_factor,
            interval=self.interval,
            repetitions=self.repetitions,
            last_reviewed=self.last_reviewed,
            consecutive_correct=self.consecutive_correct,
            consecutive_incorrect=self.consecutive_incorrect,
        )


class PracticeItemRecord(_CamelModel):
    """Serialized catalog entry (``id`` is accepted for ``itemId``)."""

    item_id: str = Field(validation_alias="id")
    unit: str
    topic: str
    difficulty: DifficultyTier = DifficultyTier.MEDIUM
    estimated_time_seconds: float = Field(default=60.0, gt=0)
    tool_required: bool = False
    practice_count: int = 0
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    last_practiced: UtcDatetime | None = None
    next_review_date: UtcDatetime | None = None
    ease_factor: float | None = None
    interval: int | None = None

    @classmethod
    def parse(cls, data: dict[str, Any]) -> PracticeItemRecord:
        """Accept either ``id`` or ``itemId`` as the identifier key."""
        if "id" not in data and "itemId" in data:
            data = {**data, "id": data["itemId"]}
        return cls.model_validate(data)

    def to_item(self) -> PracticeItem:
        return PracticeItem(
            item_id=self.item_id,
            unit=self.unit,
            topic=self.topic,
            difficulty=self.difficulty,
            estimated_time_seconds=self.estimated_time_seconds,
            tool_required=self.tool_required,
            practice_count=self.practice_count,
            success_rate=self.success_rate,
            last_practiced=self.last_practiced,
            next_review_date=self.next_review_date,
            ease_factor=self.ease_factor,
            interval=self.interval,
        )


def card_to_dict(card: ReviewCard) -> dict[str, Any]:
    """ReviewCard -> JSON-ready dict with camelCase keys."""
    return ReviewCardRecord.from_card(card).model_dump(mode="json", by_alias=True)


def card_from_dict(data: dict[str, Any]) -> ReviewCard:
    """camelCase dict (or JSON-decoded object) -> ReviewCard."""
    return ReviewCardRecord.model_validate(data).to_card()
