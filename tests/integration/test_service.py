"""
Integration tests for PracticeService against a real SQLite store.
"""

import threading
from datetime import timedelta

import pytest

from practice_scheduler.core.errors import (
    ContractViolationError,
    InvalidAttemptError,
    MissingItemMetadataError,
    ProgressStoreError,
)
from practice_scheduler.core.models import AttemptEvent, DifficultyTier
from practice_scheduler.scheduling.difficulty import RecommendationFilters
from practice_scheduler.service import PracticeService
from practice_scheduler.store.item_catalog import ItemCatalog
from practice_scheduler.store.progress_store import ProgressStore


@pytest.fixture
def service(tmp_path, sample_items):
    store = ProgressStore(tmp_path / "progress.db")
    yield PracticeService(store=store, catalog=ItemCatalog.from_items(sample_items))
    store.close()


def attempt(item_id: str, correct: bool = True, time_spent: float = 30.0, hints: int = 0):
    return AttemptEvent(item_id, correct, time_spent, 60.0, hints)


class TestRecordAttempt:
    def test_first_attempt_creates_card(self, service, now):
        result = service.record_attempt(attempt("alg-1"), now=now)

        assert result.quality == 5
        assert result.card.interval == 1
        stored = service.store.get_card("alg-1")
        assert stored == result.card
        assert stored.next_review == now + timedelta(days=1)

    def test_successive_attempts_follow_sm2(self, service, now):
        service.record_attempt(attempt("alg-1"), now=now)
        result = service.record_attempt(attempt("alg-1"), now=now + timedelta(days=1))

        assert result.card.repetitions == 2
        assert result.card.interval == 6

    def test_attempt_is_logged(self, service, now):
        service.record_attempt(attempt("alg-1", correct=False, hints=1), now=now)

        logged = service.store.get_attempts(item_ids=["alg-1"])
        assert len(logged) == 1
        assert logged[0].timestamp == now
        assert logged[0].hints_used == 1

    def test_invalid_attempt_stores_nothing(self, service, now):
        with pytest.raises(InvalidAttemptError):
            service.record_attempt(attempt("alg-1", time_spent=-5), now=now)

        assert service.store.get_card("alg-1") is None
        assert service.store.get_attempts() == []

    def test_unit_progress_refreshed(self, service, now):
        service.record_attempt(attempt("alg-1", correct=False), now=now)
        service.record_attempt(attempt("alg-1", correct=False), now=now + timedelta(minutes=5))

        unit = service.store.load_units()["unit-1"]

        assert unit.problems_attempted == 2
        assert unit.problems_correct == 0
        assert unit.weak_topics == ["algebra"]
        assert set(unit.topic_mastery) == {"algebra", "functions"}
        assert unit.mastery == 0.0
        assert unit.last_practiced == now + timedelta(minutes=5)

    def test_item_outside_catalog_rejected(self, service, now):
        with pytest.raises(MissingItemMetadataError) as exc:
            service.record_attempt(attempt("typo-id"), now=now - timedelta(days=3))

        assert exc.value.item_ids == ["typo-id"]
        assert service.store.get_card("typo-id") is None
        assert service.store.get_attempts() == []
        assert service.store.load_units() == {}
        assert service.daily_queue(now=now) == []

    def test_concurrent_attempts_are_serialized(self, service, now):
        threads = [
            threading.Thread(target=service.record_attempt, args=(attempt("alg-1"),), kwargs={"now": now})
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        card = service.store.get_card("alg-1")
        assert card.repetitions == 8
        assert card.consecutive_correct == 8
        assert len(service.store.get_attempts()) == 8


class TestSessions:
    @pytest.fixture
    def large_service(self, tmp_path, make_item):
        items = [make_item(f"q-{i}", f"unit-{i % 3}", f"topic-{i % 5}") for i in range(15)]
        store = ProgressStore(tmp_path / "large.db")
        yield PracticeService(store=store, catalog=ItemCatalog.from_items(items))
        store.close()

    def test_end_collects_attempts_since_start(self, service, now):
        service.record_attempt(attempt("alg-1"), now=now - timedelta(hours=1))
        session_id = service.start_session(now=now)
        service.record_attempt(attempt("fn-1"), now=now + timedelta(minutes=2))
        service.record_attempt(attempt("trig-1", correct=False), now=now + timedelta(minutes=4))

        session = service.end_session(session_id, now=now + timedelta(minutes=5))

        assert session.completed
        assert session.item_ids == ["fn-1", "trig-1"]
        assert session.results == [True, False]
        assert session.duration_seconds == pytest.approx(300)
        assert len(service.store.load_user_progress().sessions) == 1

    def test_explicit_items_must_pair_with_results(self, service, now):
        session_id = service.start_session(now=now)

        with pytest.raises(ContractViolationError):
            service.end_session(session_id, ["alg-1", "fn-1"], [True], now=now)

    def test_session_closes_once(self, service, now):
        session_id = service.start_session(now=now)
        service.end_session(session_id, now=now + timedelta(minutes=1))

        with pytest.raises(ProgressStoreError):
            service.end_session(session_id, now=now + timedelta(minutes=2))

    def test_logged_sessions_shrink_daily_queue(self, large_service, now):
        earlier = now - timedelta(days=3)
        for i in range(15):
            large_service.record_attempt(attempt(f"q-{i}"), now=earlier)

        assert len(large_service.daily_queue(now=now)) == 15

        # 42 minutes over the 7-day window: floor(2520 / 7 / 30) = 12 reviews
        session_id = large_service.start_session(now=now - timedelta(days=1))
        large_service.end_session(session_id, now=now - timedelta(days=1, seconds=-2520))

        assert len(large_service.daily_queue(now=now)) == 12


class TestQueues:
    def test_daily_queue_contains_due_items(self, service, now):
        earlier = now - timedelta(days=2)
        for item_id in ("alg-1", "fn-1", "trig-1"):
            service.record_attempt(attempt(item_id), now=earlier)
        service.record_attempt(attempt("trig-2"), now=now)  # due tomorrow

        queue = service.daily_queue(now=now)

        assert set(queue) == {"alg-1", "fn-1", "trig-1"}

    def test_explicit_target(self, service, now):
        earlier = now - timedelta(days=2)
        for item_id in ("alg-1", "alg-2", "fn-1", "trig-1"):
            service.record_attempt(attempt(item_id), now=earlier)

        assert len(service.daily_queue(target=2, now=now)) == 2

    def test_unknown_due_card_rejected(self, service, make_card, now):
        service.store.save_card(make_card("ghost", -1))

        with pytest.raises(MissingItemMetadataError):
            service.daily_queue(now=now)

    def test_queue_stats(self, service, now):
        earlier = now - timedelta(days=3)
        service.record_attempt(attempt("alg-1"), now=earlier)
        service.record_attempt(attempt("trig-1"), now=earlier)

        stats = service.queue_stats(now=now)

        assert stats.total == 2
        assert stats.overdue == 2
        assert stats.by_unit == {"unit-1": 1, "unit-2": 1}
        assert stats.tool_required == 1

    def test_forecast_uses_stored_schedule(self, service, now):
        service.record_attempt(attempt("alg-1"), now=now)  # due in 1 day
        service.record_attempt(attempt("fn-1", correct=False), now=now)  # due in 1 day

        schedule = service.forecast(days=3, now=now)

        assert schedule.total_reviews == 2
        assert schedule.daily_schedules[1].total_count == 2
        assert schedule.daily_schedules[1].difficulty_distribution["weak"] == 1


class TestRecommendations:
    def test_history_steers_recommendation(self, service, now):
        for minutes in range(3):
            service.record_attempt(attempt("alg-1"), now=now + timedelta(minutes=minutes))

        best = service.next_problem(
            RecommendationFilters(topic="algebra"), now=now + timedelta(hours=1)
        )
        assert best.item_id == "alg-2"

    def test_no_match(self, service, now):
        assert service.next_problem(RecommendationFilters(unit="unit-9"), now=now) is None

    def test_items_with_history(self, service, now):
        service.record_attempt(attempt("alg-1", correct=False), now=now)
        service.record_attempt(attempt("alg-1"), now=now + timedelta(minutes=1))

        item = next(i for i in service.items_with_history() if i.item_id == "alg-1")

        assert item.practice_count == 2
        assert item.success_rate == pytest.approx(0.5)
        assert item.last_practiced == now + timedelta(minutes=1)
        assert item.next_review_date == now + timedelta(minutes=1, days=1)
        assert service.catalog.get("alg-1").practice_count == 0

    def test_difficulty_targets(self, service, now):
        service.record_attempt(attempt("alg-1", correct=False), now=now)

        targets = service.difficulty_targets()

        assert targets["unit-1"].min is DifficultyTier.EASY
        assert targets["unit-1"].max is DifficultyTier.EASY

    def test_recommended_tier(self, service, now):
        for minutes in range(3):
            service.record_attempt(attempt("alg-1"), now=now + timedelta(minutes=minutes))

        assert service.recommended_tier("alg-1") is DifficultyTier.HARD
        assert service.recommended_tier("fn-2") is DifficultyTier.HARD  # catalog tier
        assert service.recommended_tier("ghost") is None

    def test_topic_report(self, service, now):
        service.record_attempt(attempt("fn-1"), now=now)
        service.record_attempt(attempt("fn-1"), now=now + timedelta(minutes=1))
        service.record_attempt(attempt("fn-2", correct=False), now=now)
        service.record_attempt(attempt("fn-2", correct=False), now=now + timedelta(minutes=1))

        report = service.topic_report("functions")

        assert report.topic == "functions"
        assert report.total_attempts == 4
        assert report.accuracy == pytest.approx(0.5)
        assert report.strong_points == ["fn-1"]
        assert report.weak_points == ["fn-2"]
