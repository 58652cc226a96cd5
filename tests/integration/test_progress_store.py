"""
Integration tests for the SQLite progress store and JSON item catalog.

Each test works on a fresh database under tmp_path.
"""

import json
from datetime import timedelta

import pytest

from practice_scheduler.core.errors import ProgressStoreError
from practice_scheduler.core.models import AttemptEvent, DifficultyTier, UnitProgress
from practice_scheduler.store.item_catalog import ItemCatalog
from practice_scheduler.store.progress_store import ProgressStore


@pytest.fixture
def store(tmp_path):
    store = ProgressStore(tmp_path / "progress.db")
    yield store
    store.close()


class TestReviewCards:
    def test_missing_card(self, store):
        assert store.get_card("nope") is None
        assert store.load_cards() == []

    def test_save_and_load(self, store, make_card, now):
        card = make_card("alg-1", 6, ease_factor=2.6, interval=6, repetitions=2,
                         last_reviewed=now, consecutive_correct=2)
        store.save_card(card)

        assert store.get_card("alg-1") == card

    def test_save_replaces(self, store, make_card):
        store.save_card(make_card("alg-1", 1, interval=1))
        store.save_card(make_card("alg-1", 6, interval=6))

        cards = store.load_cards()
        assert len(cards) == 1
        assert cards[0].interval == 6

    def test_load_ordered_by_next_review(self, store, make_card):
        store.save_cards([make_card("later", 5), make_card("sooner", -1), make_card("mid", 0.5)])
        assert [c.item_id for c in store.load_cards()] == ["sooner", "mid", "later"]

    def test_survives_reopen(self, tmp_path, make_card):
        path = tmp_path / "progress.db"
        first = ProgressStore(path)
        first.save_card(make_card("alg-1", 2))
        first.close()

        second = ProgressStore(path)
        assert second.get_card("alg-1") is not None
        second.close()

    def test_corrupt_row_raises(self, store):
        store.conn.execute(
            "INSERT INTO review_cards (item_id, next_review) VALUES ('bad', 'not-a-date')"
        )
        store.conn.commit()

        with pytest.raises(ProgressStoreError):
            store.load_cards()


class TestAttempts:
    def test_log_and_read_oldest_first(self, store, now):
        store.log_attempt(AttemptEvent("a", True, 30, 60, timestamp=now - timedelta(hours=2)), 5)
        store.log_attempt(AttemptEvent("b", False, 90, 60, 1, timestamp=now - timedelta(hours=1)))
        store.log_attempt(AttemptEvent("a", False, 45, 60, 2, timestamp=now))

        attempts = store.get_attempts()

        assert [(a.item_id, a.correct) for a in attempts] == [("a", True), ("b", False), ("a", False)]
        assert attempts[2].hints_used == 2
        assert attempts[2].timestamp == now

    def test_filter_and_limit(self, store, now):
        for i in range(5):
            store.log_attempt(AttemptEvent("a", i % 2 == 0, 30, 60, timestamp=now + timedelta(minutes=i)))
        store.log_attempt(AttemptEvent("b", True, 30, 60, timestamp=now))

        assert len(store.get_attempts(item_ids=["a"])) == 5
        recent = store.get_attempts(item_ids=["a"], limit=2)
        assert [a.timestamp for a in recent] == [now + timedelta(minutes=3), now + timedelta(minutes=4)]
        assert store.get_attempts(item_ids=[]) == []

    def test_since(self, store, now):
        for i in range(4):
            store.log_attempt(AttemptEvent("a", True, 30, 60, timestamp=now + timedelta(minutes=i)))

        recent = store.get_attempts(since=now + timedelta(minutes=2))
        assert [a.timestamp for a in recent] == [now + timedelta(minutes=2), now + timedelta(minutes=3)]


class TestSaveAttemptResult:
    def test_card_and_attempt_written_together(self, store, make_card, now):
        card = make_card("alg-1", 1, interval=1, repetitions=1, last_reviewed=now)

        store.save_attempt_result(card, AttemptEvent("alg-1", True, 30, 60, timestamp=now), 5)

        assert store.get_card("alg-1") == card
        assert [a.item_id for a in store.get_attempts()] == ["alg-1"]

    def test_failed_log_rolls_back_card(self, store, make_card, now):
        store.save_card(make_card("alg-1", 1, interval=1))
        updated = make_card("alg-1", 6, interval=6)
        # NOT NULL violation on attempt_log.item_id
        broken = AttemptEvent(None, True, 30, 60, timestamp=now)

        with pytest.raises(ProgressStoreError):
            store.save_attempt_result(updated, broken, 5)

        assert store.get_card("alg-1").interval == 1
        assert store.get_attempts() == []


class TestSessions:
    def test_session_lifecycle(self, store, now):
        session_id = store.start_session(now=now)
        store.end_session(session_id, ["a", "b"], [True, False], now=now + timedelta(minutes=10))

        sessions = store.get_sessions()

        assert len(sessions) == 1
        assert sessions[0].duration_seconds == pytest.approx(600)
        assert sessions[0].item_ids == ["a", "b"]
        assert sessions[0].results == [True, False]

    def test_open_sessions_excluded(self, store, now):
        session_id = store.start_session(now=now)

        assert store.get_sessions() == []
        open_session = store.get_session(session_id)
        assert open_session.completed is False
        assert open_session.started_at == now

    def test_unknown_session(self, store):
        with pytest.raises(ProgressStoreError):
            store.end_session(999, [], [])


class TestUserProgress:
    def test_snapshot(self, store, make_card, now):
        store.save_card(make_card("alg-1", 0))
        store.save_unit_progress(UnitProgress(
            "unit-1", mastery=0.4, weak_topics=["functions"],
            topic_mastery={"algebra": 0.7, "functions": 0.1},
            problems_attempted=10, problems_correct=6, last_practiced=now,
        ))
        session_id = store.start_session(now=now)
        store.end_session(session_id, ["alg-1"], [True], now=now + timedelta(minutes=5))

        progress = store.load_user_progress()

        assert [c.item_id for c in progress.cards] == ["alg-1"]
        unit = progress.unit_progress("unit-1")
        assert unit.mastery == pytest.approx(0.4)
        assert unit.weak_topics == ["functions"]
        assert unit.topic_mastery == {"algebra": 0.7, "functions": 0.1}
        assert unit.last_practiced == now
        assert len(progress.sessions) == 1

    def test_stats(self, store, make_card, now):
        store.save_cards([make_card("a", -1), make_card("b", 3)])
        store.log_attempt(AttemptEvent("a", True, 30, 60, timestamp=now))
        store.log_attempt(AttemptEvent("a", False, 30, 60, timestamp=now))

        stats = store.get_stats(now=now)

        assert stats["total_cards"] == 2
        assert stats["cards_due"] == 1
        assert stats["total_attempts"] == 2
        assert stats["accuracy_recent_percent"] == 50.0
        assert stats["sessions_completed"] == 0


class TestItemCatalog:
    def write(self, path, data):
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_load_file(self, tmp_path):
        source = self.write(tmp_path / "items.json", [
            {"id": "alg-1", "unit": "unit-1", "topic": "algebra", "difficulty": "easy"},
            {"itemId": "fn-1", "unit": "unit-1", "topic": "functions", "toolRequired": True},
            {"id": "bad", "unit": "unit-1"},
        ])
        catalog = ItemCatalog(source)

        assert catalog.load() == 2
        assert "alg-1" in catalog
        assert catalog.get("alg-1").difficulty is DifficultyTier.EASY
        assert catalog.get("fn-1").tool_required is True
        assert catalog.get("bad") is None

    def test_load_directory(self, tmp_path):
        self.write(tmp_path / "a.json", {"items": [{"id": "a", "unit": "u1", "topic": "t1"}]})
        self.write(tmp_path / "b.json", [{"id": "b", "unit": "u2", "topic": "t1"}])
        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")

        catalog = ItemCatalog(tmp_path)

        assert catalog.load() == 2
        assert catalog.units == ["u1", "u2"]
        assert [i.item_id for i in catalog.filter_topic("t1")] == ["a", "b"]
        assert [i.item_id for i in catalog.filter_unit("u2")] == ["b"]
        assert [i.item_id for i in catalog.get_by_ids(["b", "zzz", "a"])] == ["b", "a"]

    def test_missing_source(self, tmp_path):
        catalog = ItemCatalog(tmp_path / "nowhere.json")
        assert catalog.load() == 0
        assert catalog.stats()["status"] == "empty"

    def test_stats(self, sample_items):
        stats = ItemCatalog.from_items(sample_items).stats()

        assert stats["total_items"] == 6
        assert stats["by_unit"] == {"unit-1": 4, "unit-2": 2}
        assert stats["by_difficulty"] == {"easy": 1, "medium": 4, "hard": 1}
        assert stats["tool_required"] == 2
