"""Exceptions raised inside the highlighting engine.

None of these reach the author: each is recovered where it is caught
and degrades to fewer or delayed highlights.
"""


class HighlightError(Exception):
    """Base exception for highlighting errors."""


class CatalogEntryInvalid(HighlightError):
    """A catalog entry could not be indexed (empty or oversized name, bad record)."""

    def __init__(self, entity_id: str, reason: str):
        super().__init__(f"Catalog entry {entity_id!r} skipped: {reason}")
        self.entity_id = entity_id
        self.reason = reason

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CatalogEntryInvalid):
            return NotImplemented
        return (self.entity_id, self.reason) == (other.entity_id, other.reason)

    def __hash__(self) -> int:
        return hash((self.entity_id, self.reason))


class ScanBudgetExceeded(HighlightError):
    """Window computation or scan went over its size or time budget."""

    def __init__(self, message: str, window_chars: int | None = None):
        super().__init__(message)
        self.window_chars = window_chars


class StaleApplyAborted(HighlightError):
    """Document offsets changed between scan and apply; batch discarded."""

    def __init__(self, document_id: str, reason: str):
        super().__init__(f"Apply aborted for {document_id!r}: {reason}")
        self.document_id = document_id
        self.reason = reason
