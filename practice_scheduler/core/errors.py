"""Exceptions raised by the practice scheduler."""

from __future__ import annotations


class PracticeSchedulerError(Exception):
    """Base class for all practice scheduler errors."""
    pass


class ContractViolationError(PracticeSchedulerError):
    """The caller supplied data that breaks the engine's input contract."""
    pass


class MissingItemMetadataError(ContractViolationError):
    """Due cards reference items the catalog does not know about."""

    def __init__(self, item_ids: list[str]):
        self.item_ids = list(item_ids)
        preview = ", ".join(self.item_ids[:5])
        more = f" (+{len(self.item_ids) - 5} more)" if len(self.item_ids) > 5 else ""
        super().__init__(f"No catalog metadata for item(s): {preview}{more}")


class InvalidAttemptError(PracticeSchedulerError, ValueError):
    """An attempt carries negative timings or hint counts."""
    pass


class ProgressStoreError(PracticeSchedulerError):
    """Stored progress could not be read or written."""
    pass
