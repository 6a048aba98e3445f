"""
Story Bible reference highlighting.

Detects mentions of catalog entities (by name or tag) in a document
and keeps a non-overlapping set of highlight marks in sync with the
text as the author types.

Components:
- HighlightConfig: Configuration for the engine
- build_index / EntityIndex: Searchable patterns from the catalog
- compute_window: Which part of the document a rescan covers
- scan: Raw, word-boundary anchored pattern matching
- resolve: Longest-match-wins overlap resolution
- HighlightApplier / HighlightScheduler: Debounced, revision-checked reconciliation
- HighlightEngine: Facade tying the above to a catalog and documents
"""

from src.highlighting.applier import HighlightApplier, HighlightState
from src.highlighting.config import HighlightConfig
from src.highlighting.document import DocumentEvent, DocumentModel, InMemoryDocument
from src.highlighting.errors import (
    CatalogEntryInvalid,
    HighlightError,
    ScanBudgetExceeded,
    StaleApplyAborted,
)
from src.highlighting.index import EntityIndex, build_index, normalize_text
from src.highlighting.resolver import resolve
from src.highlighting.scanner import scan
from src.highlighting.scheduler import HighlightScheduler, SchedulerState
from src.highlighting.schemas import (
    Pattern,
    PatternKind,
    RawMatch,
    ResolvedMatch,
    ScanRequest,
    ScanResult,
    Window,
)
from src.highlighting.service import HighlightEngine
from src.highlighting.window import compute_window

__all__ = [
    "HighlightConfig",
    "HighlightEngine",
    "HighlightApplier",
    "HighlightState",
    "HighlightScheduler",
    "SchedulerState",
    "DocumentEvent",
    "DocumentModel",
    "InMemoryDocument",
    "EntityIndex",
    "build_index",
    "normalize_text",
    "compute_window",
    "scan",
    "resolve",
    "Pattern",
    "PatternKind",
    "RawMatch",
    "ResolvedMatch",
    "ScanRequest",
    "ScanResult",
    "Window",
    "HighlightError",
    "CatalogEntryInvalid",
    "ScanBudgetExceeded",
    "StaleApplyAborted",
]
