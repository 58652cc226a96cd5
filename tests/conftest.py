"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from practice_scheduler.core.models import (  # noqa: E402
    DifficultyTier,
    PracticeItem,
    ReviewCard,
    UserProgress,
)
from practice_scheduler.scheduling.card_scheduler import CardScheduler  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite in tmp_path)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    """Fixed evaluation time for deterministic scheduling."""
    return datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def scheduler():
    """Card scheduler with default configuration."""
    return CardScheduler()


@pytest.fixture
def make_card(now):
    """Factory for review cards, due ``due_in_days`` from now (negative = overdue)."""

    def _make(item_id: str, due_in_days: float = 0, **fields) -> ReviewCard:
        return ReviewCard(
            item_id=item_id,
            next_review=now + timedelta(days=due_in_days),
            **fields,
        )

    return _make


@pytest.fixture
def make_item():
    """Factory for catalog items."""

    def _make(item_id: str, unit: str = "unit-1", topic: str = "algebra", **fields) -> PracticeItem:
        return PracticeItem(item_id=item_id, unit=unit, topic=topic, **fields)

    return _make


@pytest.fixture
def sample_items(make_item):
    """A small catalog spanning two units and three topics."""
    return [
        make_item("alg-1", "unit-1", "algebra", difficulty=DifficultyTier.EASY),
        make_item("alg-2", "unit-1", "algebra", difficulty=DifficultyTier.MEDIUM),
        make_item("fn-1", "unit-1", "functions", tool_required=True),
        make_item("fn-2", "unit-1", "functions", difficulty=DifficultyTier.HARD),
        make_item("trig-1", "unit-2", "trigonometry", tool_required=True),
        make_item("trig-2", "unit-2", "trigonometry", estimated_time_seconds=120.0),
    ]


@pytest.fixture
def empty_progress():
    """Progress snapshot with no cards, units or sessions."""
    return UserProgress()
