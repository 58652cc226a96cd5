"""
SQLite Progress Store.

Provides portable persistence for:
- Review card state per practice item
- Attempt log for difficulty and topic analysis
- Practice session history for capacity estimates
- Per-unit progress snapshots

Database location: ~/.practice/progress.db (see Settings.db_path)

Timestamps are stored as ISO-8601 text with a UTC offset.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from practice_scheduler.core.errors import ProgressStoreError
from practice_scheduler.core.models import (
    AttemptEvent,
    PracticeSession,
    ReviewCard,
    UnitProgress,
    UserProgress,
    utcnow,
)
from practice_scheduler.core.records import ReviewCardRecord


def _iso(moment: datetime | None) -> str | None:
    return moment.astimezone(timezone.utc).isoformat() if moment is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class ProgressStore:
    """
    SQLite-backed persistence for one learner's progress.

    Handles:
    - Review cards (full replacement on save, last write wins)
    - Attempt log with timing and hints
    - Session history for capacity estimation
    - Unit progress (mastery, weak topics, per-topic mastery)
    """

    DEFAULT_DB_PATH = Path.home() / ".practice" / "progress.db"

    def __init__(self, db_path: Path | None = None):
        """
        Initialize the progress store.

        Args:
            db_path: Custom database path (defaults to ~/.practice/progress.db)
        """
        self.db_path = db_path or self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.debug(f"ProgressStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            try:
                # The service serializes writers; allow use from its worker threads
                self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            except sqlite3.Error as e:
                raise ProgressStoreError(f"Cannot open {self.db_path}: {e}") from e
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()

        # Review card per item
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS review_cards (
                item_id TEXT PRIMARY KEY,
                ease_factor REAL NOT NULL DEFAULT 2.5,
                interval INTEGER NOT NULL DEFAULT 0,
                repetitions INTEGER NOT NULL DEFAULT 0,
                next_review TEXT NOT NULL,
                last_reviewed TEXT,
                consecutive_correct INTEGER NOT NULL DEFAULT 0,
                consecutive_incorrect INTEGER NOT NULL DEFAULT 0
            )
        """)

        # Attempt history log
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS attempt_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                item_id TEXT NOT NULL,
                attempted_at TEXT NOT NULL,
                correct BOOLEAN NOT NULL,
                time_spent_seconds REAL NOT NULL,
                expected_time_seconds REAL NOT NULL,
                hints_used INTEGER NOT NULL DEFAULT 0,
                quality INTEGER
            )
        """)

        # Session history
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS practice_sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                started_at TEXT NOT NULL,
                ended_at TEXT,
                duration_seconds REAL DEFAULT 0.0,
                item_ids TEXT DEFAULT '[]',
                results TEXT DEFAULT '[]'
            )
        """)

        # Unit progress
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS unit_progress (
                unit TEXT PRIMARY KEY,
                mastery REAL DEFAULT 0.0,
                weak_topics TEXT DEFAULT '[]',
                topic_mastery TEXT DEFAULT '{}',
                problems_attempted INTEGER DEFAULT 0,
                problems_correct INTEGER DEFAULT 0,
                last_practiced TEXT
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_review_cards_next_review
            ON review_cards(next_review)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_attempt_log_item
            ON attempt_log(item_id)
        """)

        self.conn.commit()

    # =========================================================================
    # Review Card Operations
    # =========================================================================

    def _row_to_card(self, row: sqlite3.Row) -> ReviewCard:
        try:
            return ReviewCardRecord(
                item_id=row["item_id"],
                ease_factor=row["ease_factor"],
                interval=row["interval"],
                repetitions=row["repetitions"],
                next_review=row["next_review"],
                last_reviewed=row["last_reviewed"],
                consecutive_correct=row["consecutive_correct"],
                consecutive_incorrect=row["consecutive_incorrect"],
            ).to_card()
        except ValidationError as e:
            raise ProgressStoreError(f"Corrupt review card {row['item_id']!r}: {e}") from e

    def load_cards(self) -> list[ReviewCard]:
        """All stored review cards, ordered by next review time."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM review_cards ORDER BY next_review ASC, item_id ASC")
        return [self._row_to_card(row) for row in cursor.fetchall()]

    def get_card(self, item_id: str) -> ReviewCard | None:
        """
        Get the review card for an item.

        Returns:
            ReviewCard, or None if the item was never practiced
        """
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM review_cards WHERE item_id = ?", (item_id,))
        row = cursor.fetchone()
        return self._row_to_card(row) if row is not None else None

    def save_card(self, card: ReviewCard) -> None:
        """Save or replace a review card."""
        self.save_cards([card])

    def save_cards(self, cards: Iterable[ReviewCard]) -> int:
        """
        Save or replace many review cards in one transaction.

        Returns:
            Number of cards written
        """
        cards = list(cards)
        try:
            with self.conn:
                self._upsert_cards(cards)
        except sqlite3.Error as e:
            raise ProgressStoreError(f"Failed to save review cards: {e}") from e
        return len(cards)

    def _upsert_cards(self, cards: list[ReviewCard]) -> None:
        rows = [
            (
                card.item_id,
                card.ease_factor,
                card.interval,
                card.repetitions,
                _iso(card.next_review),
                _iso(card.last_reviewed),
                card.consecutive_correct,
                card.consecutive_incorrect,
            )
            for card in cards
        ]
        self.conn.executemany(
            """
            INSERT INTO review_cards (
                item_id, ease_factor, interval, repetitions, next_review,
                last_reviewed, consecutive_correct, consecutive_incorrect
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(item_id) DO UPDATE SET
                ease_factor = excluded.ease_factor,
                interval = excluded.interval,
                repetitions = excluded.repetitions,
                next_review = excluded.next_review,
                last_reviewed = excluded.last_reviewed,
                consecutive_correct = excluded.consecutive_correct,
                consecutive_incorrect = excluded.consecutive_incorrect
        """,
            rows,
        )

    # =========================================================================
    # Attempt Log Operations
    # =========================================================================

    def log_attempt(self, attempt: AttemptEvent, quality: int | None = None) -> int:
        """
        Log an attempt.

        Args:
            attempt: The attempt (timestamp defaults to now)
            quality: Derived SM-2 quality, when known

        Returns:
            Attempt record ID
        """
        try:
            with self.conn:
                return self._insert_attempt(attempt, quality)
        except sqlite3.Error as e:
            raise ProgressStoreError(f"Failed to log attempt on {attempt.item_id!r}: {e}") from e

    def save_attempt_result(
        self,
        card: ReviewCard,
        attempt: AttemptEvent,
        quality: int | None = None,
    ) -> int:
        """
        Save the updated card and log the attempt in one transaction.

        Either both writes land or neither does.

        Returns:
            Attempt record ID
        """
        try:
            with self.conn:
                self._upsert_cards([card])
                return self._insert_attempt(attempt, quality)
        except sqlite3.Error as e:
            raise ProgressStoreError(f"Failed to save attempt on {attempt.item_id!r}: {e}") from e

    def _insert_attempt(self, attempt: AttemptEvent, quality: int | None) -> int:
        cursor = self.conn.execute(
            """
            INSERT INTO attempt_log (
                item_id, attempted_at, correct, time_spent_seconds,
                expected_time_seconds, hints_used, quality
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
            (
                attempt.item_id,
                _iso(attempt.timestamp or utcnow()),
                attempt.correct,
                attempt.time_spent_seconds,
                attempt.expected_time_seconds,
                attempt.hints_used,
                quality,
            ),
        )
        return cursor.lastrowid

    def get_attempts(
        self,
        item_ids: Iterable[str] | None = None,
        limit: int | None = None,
        since: datetime | None = None,
    ) -> list[AttemptEvent]:
        """
        Attempt history, oldest first.

        Args:
            item_ids: Restrict to these items (all items if None)
            limit: Keep only the most recent N attempts
            since: Keep only attempts at or after this time
        """
        query = "SELECT * FROM attempt_log"
        clauses: list[str] = []
        params: list = []
        if item_ids is not None:
            ids = list(item_ids)
            if not ids:
                return []
            clauses.append(f"item_id IN ({', '.join('?' for _ in ids)})")
            params.extend(ids)
        if since is not None:
            clauses.append("attempted_at >= ?")
            params.append(_iso(since))
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY attempted_at DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        cursor = self.conn.cursor()
        cursor.execute(query, params)
        attempts = [
            AttemptEvent(
                item_id=row["item_id"],
                correct=bool(row["correct"]),
                time_spent_seconds=row["time_spent_seconds"],
                expected_time_seconds=row["expected_time_seconds"],
                hints_used=row["hints_used"],
                timestamp=_parse(row["attempted_at"]),
            )
            for row in cursor.fetchall()
        ]
        attempts.reverse()
        return attempts

    # =========================================================================
    # Session Operations
    # =========================================================================

    def start_session(self, now: datetime | None = None) -> int:
        """
        Start a new practice session.

        Returns:
            Session ID
        """
        cursor = self.conn.cursor()
        cursor.execute(
            "INSERT INTO practice_sessions (started_at) VALUES (?)",
            (_iso(now or utcnow()),),
        )
        self.conn.commit()
        return cursor.lastrowid

    def end_session(
        self,
        session_id: int,
        item_ids: list[str],
        results: list[bool],
        now: datetime | None = None,
    ) -> None:
        """
        Close a session, recording what was practiced and how it went.

        Raises:
            ProgressStoreError: unknown session id
        """
        now = now or utcnow()
        cursor = self.conn.cursor()
        cursor.execute("SELECT started_at FROM practice_sessions WHERE id = ?", (session_id,))
        row = cursor.fetchone()
        if row is None:
            raise ProgressStoreError(f"Unknown session id {session_id}")

        duration = max(0.0, (now - _parse(row["started_at"])).total_seconds())
        cursor.execute(
            """
            UPDATE practice_sessions SET
                ended_at = ?,
                duration_seconds = ?,
                item_ids = ?,
                results = ?
            WHERE id = ?
        """,
            (_iso(now), duration, json.dumps(item_ids), json.dumps(results), session_id),
        )
        self.conn.commit()

    def get_session(self, session_id: int) -> PracticeSession:
        """
        Look up a session, open or completed.

        Raises:
            ProgressStoreError: unknown session id
        """
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM practice_sessions WHERE id = ?", (session_id,))
        row = cursor.fetchone()
        if row is None:
            raise ProgressStoreError(f"Unknown session id {session_id}")
        return PracticeSession(
            started_at=_parse(row["started_at"]),
            duration_seconds=row["duration_seconds"],
            item_ids=json.loads(row["item_ids"]),
            results=json.loads(row["results"]),
            completed=row["ended_at"] is not None,
        )

    def get_sessions(self, limit: int = 30) -> list[PracticeSession]:
        """Most recent completed sessions, oldest first."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT * FROM practice_sessions
            WHERE ended_at IS NOT NULL
            ORDER BY started_at DESC
            LIMIT ?
        """,
            (limit,),
        )
        sessions = [
            PracticeSession(
                started_at=_parse(row["started_at"]),
                duration_seconds=row["duration_seconds"],
                item_ids=json.loads(row["item_ids"]),
                results=json.loads(row["results"]),
            )
            for row in cursor.fetchall()
        ]
        sessions.reverse()
        return sessions

    # =========================================================================
    # Unit Progress Operations
    # =========================================================================

    def save_unit_progress(self, progress: UnitProgress) -> None:
        """Save or replace progress for a unit."""
        self.conn.execute(
            """
            INSERT INTO unit_progress (
                unit, mastery, weak_topics, topic_mastery,
                problems_attempted, problems_correct, last_practiced
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(unit) DO UPDATE SET
                mastery = excluded.mastery,
                weak_topics = excluded.weak_topics,
                topic_mastery = excluded.topic_mastery,
                problems_attempted = excluded.problems_attempted,
                problems_correct = excluded.problems_correct,
                last_practiced = excluded.last_practiced
        """,
            (
                progress.unit,
                progress.mastery,
                json.dumps(progress.weak_topics),
                json.dumps(progress.topic_mastery),
                progress.problems_attempted,
                progress.problems_correct,
                _iso(progress.last_practiced),
            ),
        )
        self.conn.commit()

    def load_units(self) -> dict[str, UnitProgress]:
        """All stored unit progress, keyed by unit."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM unit_progress")
        units: dict[str, UnitProgress] = {}
        for row in cursor.fetchall():
            try:
                units[row["unit"]] = UnitProgress(
                    unit=row["unit"],
                    mastery=row["mastery"],
                    weak_topics=json.loads(row["weak_topics"]),
                    topic_mastery=json.loads(row["topic_mastery"]),
                    problems_attempted=row["problems_attempted"],
                    problems_correct=row["problems_correct"],
                    last_practiced=_parse(row["last_practiced"]),
                )
            except (json.JSONDecodeError, ValueError) as e:
                raise ProgressStoreError(f"Corrupt unit progress {row['unit']!r}: {e}") from e
        return units

    def load_user_progress(self, session_limit: int = 30) -> UserProgress:
        """Assemble a full progress snapshot."""
        return UserProgress(
            cards=self.load_cards(),
            units=self.load_units(),
            sessions=self.get_sessions(limit=session_limit),
        )

    # =========================================================================
    # Stats & Analytics
    # =========================================================================

    def get_stats(self, now: datetime | None = None) -> dict:
        """
        Get overall practice statistics.

        Returns:
            Dictionary with aggregate stats
        """
        cursor = self.conn.cursor()

        cursor.execute("SELECT COUNT(*) as cnt FROM review_cards")
        total_cards = cursor.fetchone()["cnt"]

        # ISO text with a fixed +00:00 offset sorts chronologically
        cursor.execute(
            "SELECT COUNT(*) as cnt FROM review_cards WHERE next_review <= ?",
            (_iso(now or utcnow()),),
        )
        due_cards = cursor.fetchone()["cnt"]

        cursor.execute("SELECT COUNT(*) as cnt FROM attempt_log")
        total_attempts = cursor.fetchone()["cnt"]

        # Accuracy over the last 100 attempts
        cursor.execute("""
            SELECT AVG(correct) as accuracy FROM (
                SELECT correct FROM attempt_log ORDER BY attempted_at DESC LIMIT 100
            )
        """)
        accuracy = cursor.fetchone()["accuracy"] or 0

        cursor.execute(
            "SELECT COUNT(*) as cnt FROM practice_sessions WHERE ended_at IS NOT NULL"
        )
        sessions = cursor.fetchone()["cnt"]

        return {
            "total_cards": total_cards,
            "cards_due": due_cards,
            "total_attempts": total_attempts,
            "accuracy_recent_percent": round(accuracy * 100, 1),
            "sessions_completed": sessions,
        }

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
