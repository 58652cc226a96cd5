"""
Unit tests for the camelCase wire records.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from practice_scheduler.core.models import DifficultyTier
from practice_scheduler.core.records import (
    PracticeItemRecord,
    ReviewCardRecord,
    card_from_dict,
    card_to_dict,
)


class TestReviewCardRecord:
    def test_dict_uses_camel_case(self, make_card, now):
        card = make_card("alg-1", 6, ease_factor=2.36, interval=6, repetitions=2,
                         last_reviewed=now, consecutive_correct=2)

        data = card_to_dict(card)

        assert data["itemId"] == "alg-1"
        assert data["easeFactor"] == 2.36
        assert data["consecutiveCorrect"] == 2
        assert data["consecutiveIncorrect"] == 0
        assert data["nextReview"].startswith("2024-03-21T12:00:00")

    def test_round_trip_preserves_stats(self, scheduler, make_card, now):
        card = make_card("alg-1", -3, interval=30, repetitions=4, consecutive_incorrect=2,
                         last_reviewed=now - timedelta(days=33))

        restored = card_from_dict(card_to_dict(card))

        assert restored == card
        assert scheduler.get_card_stats(restored, now=now) == scheduler.get_card_stats(card, now=now)

    def test_naive_timestamps_treated_as_utc(self):
        card = card_from_dict({"itemId": "x", "nextReview": "2024-03-15T08:00:00"})
        assert card.next_review == datetime(2024, 3, 15, 8, 0, tzinfo=timezone.utc)
        assert card.ease_factor == 2.5
        assert card.interval == 0

    def test_ease_below_floor_rejected(self):
        with pytest.raises(ValidationError):
            ReviewCardRecord.model_validate(
                {"itemId": "x", "nextReview": "2024-03-15T08:00:00Z", "easeFactor": 1.0}
            )


class TestPracticeItemRecord:
    def test_parse_with_id_key(self):
        item = PracticeItemRecord.parse({
            "id": "alg-1",
            "unit": "unit-1",
            "topic": "algebra",
            "difficulty": "hard",
            "estimatedTimeSeconds": 90,
            "toolRequired": True,
        }).to_item()

        assert item.item_id == "alg-1"
        assert item.difficulty is DifficultyTier.HARD
        assert item.estimated_time_seconds == 90
        assert item.tool_required is True
        assert item.practice_count == 0

    def test_parse_with_item_id_key(self):
        item = PracticeItemRecord.parse(
            {"itemId": "alg-2", "unit": "unit-1", "topic": "algebra"}
        ).to_item()
        assert item.item_id == "alg-2"
        assert item.difficulty is DifficultyTier.MEDIUM

    @pytest.mark.parametrize(
        "data",
        [
            {"id": "x", "unit": "u"},  # no topic
            {"id": "x", "unit": "u", "topic": "t", "difficulty": "extreme"},
            {"id": "x", "unit": "u", "topic": "t", "estimatedTimeSeconds": 0},
            {"id": "x", "unit": "u", "topic": "t", "successRate": 1.5},
        ],
    )
    def test_invalid_entries(self, data):
        with pytest.raises(ValidationError):
            PracticeItemRecord.parse(data)
