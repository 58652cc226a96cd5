"""
Practice Service.

Connects the scheduling engine to its collaborators:
- ProgressStore (review cards, attempts, sessions, unit progress)
- ItemCatalog (practice item metadata)

The engine modules stay pure; this layer does the read-modify-write
against the store and assembles catalog items with the learner's
practice history.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime

from loguru import logger

from practice_scheduler.core.errors import (
    ContractViolationError,
    MissingItemMetadataError,
    ProgressStoreError,
)
from practice_scheduler.core.models import (
    AttemptEvent,
    DifficultyTier,
    PracticeItem,
    PracticeSession,
    UnitProgress,
    utcnow,
)
from practice_scheduler.scheduling.card_scheduler import CardScheduler, ReviewResult
from practice_scheduler.scheduling.difficulty import (
    DifficultyCalculator,
    DifficultyRange,
    RecommendationFilters,
    TopicPerformance,
)
from practice_scheduler.scheduling.review_queue import (
    ReviewQueueBuilder,
    ReviewStats,
    WeeklySchedule,
)
from practice_scheduler.store.item_catalog import ItemCatalog
from practice_scheduler.store.progress_store import ProgressStore


class PracticeService:
    """
    One learner's practice workflow.

    Attempts for the learner are applied one at a time: the card read,
    SM-2 update and write happen under a single lock.
    """

    def __init__(
        self,
        store: ProgressStore,
        catalog: ItemCatalog,
        scheduler: CardScheduler | None = None,
        difficulty: DifficultyCalculator | None = None,
        queue_builder: ReviewQueueBuilder | None = None,
    ):
        self.store = store
        self.catalog = catalog
        self.scheduler = scheduler or CardScheduler()
        self.difficulty = difficulty or DifficultyCalculator()
        self.queue_builder = queue_builder or ReviewQueueBuilder(scheduler=self.scheduler)
        self._lock = threading.Lock()

    # =========================================================================
    # Attempts
    # =========================================================================

    def record_attempt(self, event: AttemptEvent, now: datetime | None = None) -> ReviewResult:
        """
        Apply an attempt to the item's card and persist the outcome.

        A card is created on the first attempt at an item. Items missing
        from the catalog are rejected before anything is written, so no
        card can exist without metadata to enrich it.

        Raises:
            InvalidAttemptError: negative timings or hints
            MissingItemMetadataError: item not in the catalog
        """
        now = now or event.timestamp or utcnow()
        item = self.catalog.get(event.item_id)
        if item is None:
            raise MissingItemMetadataError([event.item_id])

        with self._lock:
            card = self.store.get_card(event.item_id)
            if card is None:
                card = self.scheduler.initialize_card(event.item_id, now=now)
                logger.debug(f"New card for {event.item_id}")

            result = self.scheduler.record_attempt(card, event, now=now)
            self.store.save_attempt_result(
                result.card, replace(event, timestamp=now), quality=result.quality
            )
            self._refresh_unit_progress(item.unit)

        logger.info(
            f"Recorded attempt on {event.item_id}: q={result.quality}, "
            f"next review in {result.card.interval}d"
        )
        return result

    def _refresh_unit_progress(self, unit: str) -> UnitProgress:
        """Recompute and store a unit's mastery from its attempt history."""
        items = self.catalog.filter_unit(unit)
        attempts = self.store.get_attempts(item_ids=[item.item_id for item in items])
        cfg = self.difficulty.config

        topic_mastery: dict[str, float] = {}
        weak_topics: list[str] = []
        for topic in sorted({item.topic for item in items}):
            topic_items = [item for item in items if item.topic == topic]
            performance = self.difficulty.analyze_topic_performance(topic_items, attempts)
            topic_mastery[topic] = performance.mastery_level
            if (
                performance.total_attempts >= cfg.min_attempts_to_classify
                and performance.accuracy < cfg.weak_item_accuracy
            ):
                weak_topics.append(topic)

        progress = UnitProgress(
            unit=unit,
            mastery=sum(topic_mastery.values()) / len(topic_mastery) if topic_mastery else 0.0,
            weak_topics=weak_topics,
            topic_mastery=topic_mastery,
            problems_attempted=len(attempts),
            problems_correct=sum(1 for a in attempts if a.correct),
            last_practiced=max((a.timestamp for a in attempts if a.timestamp), default=None),
        )
        self.store.save_unit_progress(progress)
        return progress

    # =========================================================================
    # Sessions
    # =========================================================================

    def start_session(self, now: datetime | None = None) -> int:
        """Open a practice session and return its id."""
        session_id = self.store.start_session(now=now)
        logger.info(f"Started session {session_id}")
        return session_id

    def end_session(
        self,
        session_id: int,
        item_ids: list[str] | None = None,
        results: list[bool] | None = None,
        now: datetime | None = None,
    ) -> PracticeSession:
        """
        Close a session.

        Completed session time feeds the adaptive daily queue size. When
        ``item_ids`` is omitted the session's items and results are taken
        from the attempts logged since it started.

        Raises:
            ContractViolationError: item_ids and results differ in length
            ProgressStoreError: unknown or already closed session
        """
        session = self.store.get_session(session_id)
        if session.completed:
            raise ProgressStoreError(f"Session {session_id} is already closed")

        if item_ids is None:
            attempts = self.store.get_attempts(since=session.started_at)
            item_ids = [a.item_id for a in attempts]
            results = [a.correct for a in attempts]
        elif results is None or len(results) != len(item_ids):
            raise ContractViolationError("Session items and results must pair up")

        self.store.end_session(session_id, item_ids, results, now=now)
        closed = self.store.get_session(session_id)
        logger.info(
            f"Ended session {session_id}: {len(item_ids)} items "
            f"in {closed.duration_seconds:.0f}s"
        )
        return closed

    # =========================================================================
    # Catalog + History
    # =========================================================================

    def items_with_history(self) -> list[PracticeItem]:
        """
        Catalog items overlaid with the learner's practice history.

        Fills practice count, success rate and last practice time from the
        attempt log, and the scheduling snapshot from stored cards.
        """
        cards = {card.item_id: card for card in self.store.load_cards()}
        history: dict[str, list[AttemptEvent]] = {}
        for attempt in self.store.get_attempts():
            history.setdefault(attempt.item_id, []).append(attempt)

        items: list[PracticeItem] = []
        for item in self.catalog:
            attempts = history.get(item.item_id, [])
            card = cards.get(item.item_id)
            updates: dict = {}
            if attempts:
                updates["practice_count"] = len(attempts)
                updates["success_rate"] = sum(1 for a in attempts if a.correct) / len(attempts)
                updates["last_practiced"] = attempts[-1].timestamp
            if card is not None:
                updates["next_review_date"] = card.next_review
                updates["ease_factor"] = card.ease_factor
                updates["interval"] = card.interval
            items.append(replace(item, **updates) if updates else item)
        return items

    # =========================================================================
    # Queues & Reports
    # =========================================================================

    def daily_queue(self, target: int | None = None, now: datetime | None = None) -> list[str]:
        """
        Today's practice queue.

        Without an explicit target the size adapts to the backlog and the
        learner's recent session time.
        """
        now = now or utcnow()
        progress = self.store.load_user_progress()

        if target is None:
            due = self.scheduler.get_review_queue(progress.cards, now=now)
            target = self.queue_builder.calculate_optimal_review_count(progress, len(due))

        return self.queue_builder.build_daily_queue(
            self.catalog.all(), progress, target_count=target, now=now
        )

    def queue_stats(self, now: datetime | None = None) -> ReviewStats:
        """Statistics over every due card."""
        now = now or utcnow()
        due = self.scheduler.get_review_queue(self.store.load_cards(), now=now)
        reviews = self.queue_builder.enrich_reviews(due, self.catalog.all())
        prioritized = self.queue_builder.prioritize_reviews(reviews, now=now)
        return self.queue_builder.get_review_stats(prioritized, now=now)

    def forecast(self, days: int = 7, now: datetime | None = None) -> WeeklySchedule:
        """Review workload over the next ``days`` days."""
        return self.queue_builder.distribute_reviews(self.items_with_history(), days, now=now)

    def next_problem(
        self,
        filters: RecommendationFilters | None = None,
        now: datetime | None = None,
    ) -> PracticeItem | None:
        """Best item to practice next, or None when nothing matches."""
        progress = self.store.load_user_progress()
        return self.difficulty.recommend_next_problem(
            progress, self.items_with_history(), filters, now=now
        )

    def difficulty_targets(self) -> dict[str, DifficultyRange]:
        """Tier range per unit from stored unit mastery."""
        return self.difficulty.get_personalized_difficulty_targets(
            self.store.load_user_progress()
        )

    def recommended_tier(self, item_id: str) -> DifficultyTier | None:
        """Tier the learner's history suggests for an item (None if unknown)."""
        item = self.catalog.get(item_id)
        if item is None:
            return None
        return self.difficulty.calculate_difficulty(
            item, self.store.get_attempts(item_ids=[item_id])
        )

    def topic_report(self, topic: str) -> TopicPerformance:
        """Accuracy, mastery and weak/strong items for a topic."""
        items = self.catalog.filter_topic(topic)
        attempts = self.store.get_attempts(item_ids=[item.item_id for item in items])
        return self.difficulty.analyze_topic_performance(items, attempts)
