"""
Item Catalog: Practice Item Loader.

Loads practice item metadata from JSON:
- a single file holding a list of items (or ``{"items": [...]}``)
- a directory of such files

Features:
- Groups items by unit and topic
- Validates entries through PracticeItemRecord (camelCase keys)
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from practice_scheduler.core.models import DifficultyTier, PracticeItem
from practice_scheduler.core.records import PracticeItemRecord


class ItemCatalog:
    """
    Read-only collection of practice item metadata.

    Features:
    - Auto-discovery of ``*.json`` files in a directory
    - Grouping by unit and topic
    - Invalid entries are logged and skipped
    """

    def __init__(self, source: Path | None = None):
        """
        Initialize the catalog.

        Args:
            source: JSON file or directory of JSON files
        """
        self.source = source

        self._items: dict[str, PracticeItem] = {}  # id -> item
        self._by_unit: dict[str, list[str]] = {}  # unit -> [item_ids]
        self._by_topic: dict[str, list[str]] = {}  # topic -> [item_ids]

        self._files_loaded: list[Path] = []
        self._items_rejected: int = 0

    @classmethod
    def from_items(cls, items: list[PracticeItem]) -> ItemCatalog:
        """Build an in-memory catalog (no file source)."""
        catalog = cls()
        for item in items:
            catalog._add(item)
        return catalog

    @property
    def units(self) -> list[str]:
        """Units with at least one item."""
        return sorted(self._by_unit.keys())

    @property
    def topics(self) -> list[str]:
        """Topics with at least one item."""
        return sorted(self._by_topic.keys())

    def load(self) -> int:
        """
        Load items from the configured source.

        Returns:
            Number of items loaded
        """
        self._items.clear()
        self._by_unit.clear()
        self._by_topic.clear()
        self._files_loaded.clear()
        self._items_rejected = 0

        if self.source is None or not self.source.exists():
            logger.warning(f"Item catalog source not found: {self.source}")
            return 0

        json_files = sorted(self.source.glob("*.json")) if self.source.is_dir() else [self.source]
        if not json_files:
            logger.warning(f"No JSON files found in {self.source}")
            return 0

        for json_path in json_files:
            self._load_file(json_path)

        logger.info(
            f"ItemCatalog loaded: {len(self._items)} items from {len(self._files_loaded)} files "
            f"({self._items_rejected} rejected)"
        )
        return len(self._items)

    def _load_file(self, path: Path) -> int:
        """
        Load items from a single JSON file.

        Returns:
            Number of items loaded from this file
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load {path}: {e}")
            return 0

        entries = data if isinstance(data, list) else data.get("items", [])
        loaded = 0

        for entry in entries:
            try:
                item = PracticeItemRecord.parse(entry).to_item()
            except (ValidationError, AttributeError, TypeError) as e:
                logger.warning(f"Invalid item in {path}: {e}")
                self._items_rejected += 1
                continue
            self._add(item)
            loaded += 1

        self._files_loaded.append(path)
        logger.debug(f"Loaded {loaded} items from {path.name}")
        return loaded

    def _add(self, item: PracticeItem) -> None:
        if item.item_id in self._items:
            logger.warning(f"Duplicate item id {item.item_id!r}; keeping the last definition")
            self._by_unit[self._items[item.item_id].unit].remove(item.item_id)
            self._by_topic[self._items[item.item_id].topic].remove(item.item_id)

        self._items[item.item_id] = item
        self._by_unit.setdefault(item.unit, []).append(item.item_id)
        self._by_topic.setdefault(item.topic, []).append(item.item_id)

    # =========================================================================

    def get(self, item_id: str) -> PracticeItem | None:
        """Get an item by ID."""
        return self._items.get(item_id)

    def get_by_ids(self, item_ids: list[str]) -> list[PracticeItem]:
        """Items for the given IDs, in that order (skips unknown IDs)."""
        return [self._items[iid] for iid in item_ids if iid in self._items]

    def all(self) -> list[PracticeItem]:
        """All items."""
        return list(self._items.values())

    def filter_unit(self, unit: str) -> list[PracticeItem]:
        """All items in a unit."""
        return [self._items[iid] for iid in self._by_unit.get(unit, [])]

    def filter_topic(self, topic: str) -> list[PracticeItem]:
        """All items on a topic."""
        return [self._items[iid] for iid in self._by_topic.get(topic, [])]

    def __iter__(self) -> Iterator[PracticeItem]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._items

    # =========================================================================
    # Statistics
    # =========================================================================

    def stats(self) -> dict:
        """
        Catalog statistics.

        Returns:
            Dictionary with counts by unit, topic and difficulty tier
        """
        if not self._items:
            return {"status": "empty", "files_loaded": len(self._files_loaded), "total_items": 0}

        by_difficulty = {tier.value: 0 for tier in DifficultyTier}
        for item in self._items.values():
            by_difficulty[item.difficulty.value] += 1

        return {
            "status": "loaded",
            "files_loaded": len(self._files_loaded),
            "total_items": len(self._items),
            "items_rejected": self._items_rejected,
            "by_unit": {unit: len(ids) for unit, ids in sorted(self._by_unit.items())},
            "by_topic": {topic: len(ids) for topic, ids in sorted(self._by_topic.items())},
            "by_difficulty": by_difficulty,
            "tool_required": sum(1 for i in self._items.values() if i.tool_required),
        }
