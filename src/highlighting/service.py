"""
Story Bible highlighting engine.

Keeps entity mentions in attached documents highlighted while the
author types. Wires the pieces together:

- Entity index rebuilt whenever the catalog version changes (polled
  before every scan, or pushed via notify_catalog_changed)
- One HighlightScheduler per attached document
- One HighlightApplier owning every document's HighlightState
- Focus mode suspends scanning and clears a document's highlights

Usage:
    >>> engine = HighlightEngine(catalog)
    >>> engine.attach("chapter-1", document)
    >>> document.insert(0, "Aria Blackwood ")   # editor events drive rescans
    >>> await engine.flush("chapter-1")
    >>> engine.reference_label("chapter-1")
    '1 Story Bible reference'
"""

import asyncio

import structlog

from src.highlighting.applier import HighlightApplier
from src.highlighting.config import HighlightConfig
from src.highlighting.document import DocumentEvent, DocumentModel
from src.highlighting.index import EntityIndex, build_index
from src.highlighting.pipeline import run_scan
from src.highlighting.scheduler import HighlightScheduler, ScanRunner
from src.highlighting.schemas import ResolvedMatch, ScanResult, ScanRequest
from src.highlighting.window import bounded_window
from src.observability.metrics import get_metrics
from src.story_bible.catalog import EntityCatalog

logger = structlog.get_logger(__name__)


class HighlightEngine:
    """
    Reference-matching and live-annotation engine.

    Args:
        catalog: Story Bible catalog to match against.
        config: Highlight configuration. If None, uses default config.
        scan_runner: Optional replacement scan step, passed to every scheduler.
    """

    def __init__(
        self,
        catalog: EntityCatalog,
        config: HighlightConfig | None = None,
        scan_runner: ScanRunner | None = None,
    ):
        self.config = config or HighlightConfig()
        self._catalog = catalog
        self._scan_runner = scan_runner
        self._applier = HighlightApplier(self.config)
        self._schedulers: dict[str, HighlightScheduler] = {}
        self._index: EntityIndex | None = None

    # Index

    @property
    def applier(self) -> HighlightApplier:
        return self._applier

    @property
    def index(self) -> EntityIndex:
        return self.current_index()

    def current_index(self) -> EntityIndex:
        """Return the index for the catalog's current version, rebuilding if needed."""
        if self._index is None or self._index.version != self._catalog.version:
            return self._rebuild()
        return self._index

    def refresh_index(self, force: bool = False) -> bool:
        """
        Rebuild the index if the catalog version moved.

        Returns:
            True if a rebuild happened.
        """
        if not force and self._index is not None and self._index.version == self._catalog.version:
            return False
        self._rebuild()
        return True

    def _rebuild(self) -> EntityIndex:
        version = self._catalog.version
        index = build_index(self._catalog.get_entities(), self.config, version=version)
        self._index = index
        get_metrics().record_index_build(index.skipped_count)
        logger.info(
            "Entity index rebuilt",
            version=version,
            patterns=len(index),
            skipped=index.skipped_count,
            skipped_tags=index.skipped_tags,
        )
        return index

    def notify_catalog_changed(self) -> None:
        """Catalog pushed a change: rebuild now and rescan every attached document."""
        if not self.refresh_index():
            return
        for scheduler in self._schedulers.values():
            scheduler.notify_catalog_changed()

    # Documents

    def attach(self, document_id: str, document: DocumentModel) -> HighlightScheduler:
        """
        Start highlighting a document.

        Subscribes to the document's change events when it offers
        subscribe(); otherwise the host forwards events to handle_event().
        Schedules a first scan when called from a running event loop.
        """
        if document_id in self._schedulers:
            return self._schedulers[document_id]

        self._applier.attach(document_id, document)
        scheduler = HighlightScheduler(
            document_id,
            self._applier,
            self.current_index,
            self.config,
            scan_runner=self._scan_runner,
        )
        self._schedulers[document_id] = scheduler

        subscribe = getattr(document, "subscribe", None)
        if callable(subscribe):
            subscribe(self.handle_event)

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Attached outside event loop; first scan deferred", document_id=document_id)
        else:
            scheduler.notify_selection_changed()

        logger.info("Document attached", document_id=document_id)
        return scheduler

    async def detach(self, document_id: str) -> None:
        """Stop highlighting a document and remove its marks."""
        scheduler = self._schedulers.pop(document_id, None)
        if scheduler is None:
            return
        await scheduler.close()

        document = self._applier.document(document_id)
        unsubscribe = getattr(document, "unsubscribe", None)
        if callable(unsubscribe):
            unsubscribe(self.handle_event)

        self._applier.detach(document_id)
        logger.info("Document detached", document_id=document_id)

    def scheduler(self, document_id: str) -> HighlightScheduler:
        try:
            return self._schedulers[document_id]
        except KeyError:
            raise KeyError(f"Document not attached: {document_id!r}") from None

    def handle_event(self, event: DocumentEvent) -> None:
        """Route an editor change notification to the document's scheduler."""
        scheduler = self._schedulers.get(event.document_id)
        if scheduler is None:
            return
        if event.kind == "text":
            scheduler.notify_text_changed()
        else:
            scheduler.notify_selection_changed()

    async def flush(self, document_id: str) -> None:
        """Wait until the document's highlights are settled."""
        await self.scheduler(document_id).flush()

    async def scan_now(self, document_id: str) -> None:
        """Rescan a document immediately, bypassing the debounce."""
        await self.scheduler(document_id).scan_now()

    def set_focus_mode(self, document_id: str, enabled: bool) -> None:
        """
        Toggle focus mode.

        While enabled no scans are scheduled and the document carries no
        highlights; disabling schedules a fresh scan.
        """
        scheduler = self.scheduler(document_id)
        if enabled:
            scheduler.suspend()
            self._applier.clear(document_id)
        else:
            scheduler.resume()
        logger.debug("Focus mode toggled", document_id=document_id, enabled=enabled)

    # Queries for the UI

    def get_active_match_count(self, document_id: str) -> int:
        return self._applier.active_count(document_id)

    def get_active_matches(self, document_id: str) -> list[ResolvedMatch]:
        return self._applier.active_matches(document_id)

    def is_degraded(self, document_id: str) -> bool:
        return self._applier.is_degraded(document_id)

    def reference_label(self, document_id: str) -> str:
        """Badge text, e.g. "3 Story Bible references"."""
        count = self.get_active_match_count(document_id)
        noun = "reference" if count == 1 else "references"
        return f"{count} Story Bible {noun}"

    # One-shot

    def highlight_text(self, text: str, cursor: int = 0) -> ScanResult:
        """
        Scan a piece of text once, without attaching a document.

        Applies the same window policy and budgets as live highlighting.
        """
        index = self.current_index()
        window = bounded_window(
            text, cursor, config=self.config, overhang_words=index.overhang_words
        )
        request = ScanRequest(
            document_id="",
            window_start=window.start,
            window_end=window.end,
            text=text[window.start : window.end],
            revision=0,
            degraded=window.degraded,
        )
        return run_scan(request, index, text, cursor, self.config)
