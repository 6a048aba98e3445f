"""
Applier: reconciles resolved matches against a document's live marks.

The applier owns one HighlightState per attached document and is the
only code that mutates it. A result is applied only if its request was
built at the state's current revision; anything older is dropped. The
diff touches only spans that changed so unchanged highlights keep the
editor's selection and undo state intact. Revision and active set move
together: either the whole diff lands and the revision advances, or
nothing changes.
"""

import html
import re
import time
from dataclasses import dataclass, field

import structlog

from src.highlighting.config import HighlightConfig
from src.highlighting.document import DocumentModel
from src.highlighting.errors import StaleApplyAborted
from src.highlighting.index import EntityIndex
from src.highlighting.schemas import ResolvedMatch, ScanRequest, ScanResult, Window
from src.observability.metrics import get_metrics
from src.story_bible.schemas import Entity

logger = structlog.get_logger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")


def tooltip_for(entity: Entity, max_chars: int = 200) -> str:
    """
    Hover text for a highlight: "<name>: <description>".

    HTML is stripped from the description, which is truncated to
    max_chars (with a trailing "...") before the whole string is escaped.
    """
    description = _TAG_RE.sub("", entity.description or "").strip()
    if len(description) > max_chars:
        description = description[: max_chars - 3] + "..."
    label = f"{entity.display_name}: {description}" if description else entity.display_name
    return html.escape(label)


@dataclass
class HighlightState:
    """Per-document highlight bookkeeping. Mutated only by HighlightApplier."""

    document_id: str
    revision: int = 0
    active_matches: frozenset[ResolvedMatch] = field(default_factory=frozenset)
    window: Window | None = None
    degraded: bool = False

    @property
    def active_count(self) -> int:
        return len(self.active_matches)

    def sorted_matches(self) -> list[ResolvedMatch]:
        return sorted(self.active_matches, key=lambda m: (m.start, m.end))


class HighlightApplier:
    """
    Owner of all HighlightStates, keyed by document id.

    Usage:
        applier = HighlightApplier()
        applier.attach("chapter-1", document)
        request = applier.make_request("chapter-1", text, window)
        ...
        applier.apply(result, index)
    """

    def __init__(self, config: HighlightConfig | None = None):
        self.config = config or HighlightConfig()
        self._states: dict[str, HighlightState] = {}
        self._documents: dict[str, DocumentModel] = {}

    # Lifecycle

    def attach(self, document_id: str, document: DocumentModel) -> HighlightState:
        """Create state for a document. Attaching twice keeps the existing state."""
        if document_id not in self._states:
            self._states[document_id] = HighlightState(document_id=document_id)
            self._documents[document_id] = document
            logger.debug("Document attached", document_id=document_id)
        return self._states[document_id]

    def detach(self, document_id: str, clear_marks: bool = True) -> None:
        """Drop a document's state, removing its marks first unless told not to."""
        if document_id not in self._states:
            return
        if clear_marks:
            self.clear(document_id)
        del self._states[document_id]
        del self._documents[document_id]
        get_metrics().clear_document(document_id)
        logger.debug("Document detached", document_id=document_id)

    def is_attached(self, document_id: str) -> bool:
        return document_id in self._states

    def _state(self, document_id: str) -> HighlightState:
        try:
            return self._states[document_id]
        except KeyError:
            raise KeyError(f"Document not attached: {document_id!r}") from None

    # Read side

    def revision(self, document_id: str) -> int:
        return self._state(document_id).revision

    def active_matches(self, document_id: str) -> list[ResolvedMatch]:
        return self._state(document_id).sorted_matches()

    def active_count(self, document_id: str) -> int:
        return self._state(document_id).active_count

    def window(self, document_id: str) -> Window | None:
        return self._state(document_id).window

    def is_degraded(self, document_id: str) -> bool:
        return self._state(document_id).degraded

    def document(self, document_id: str) -> DocumentModel:
        self._state(document_id)
        return self._documents[document_id]

    # Revision bookkeeping

    def invalidate(self, document_id: str) -> int:
        """Record a text edit: anything requested before now is stale."""
        state = self._state(document_id)
        state.revision += 1
        return state.revision

    def make_request(
        self,
        document_id: str,
        full_text: str,
        window: Window,
    ) -> ScanRequest:
        """Snapshot a window of the document at the current revision."""
        state = self._state(document_id)
        return ScanRequest(
            document_id=document_id,
            window_start=window.start,
            window_end=window.end,
            text=full_text[window.start : window.end],
            revision=state.revision,
            degraded=window.degraded,
        )

    def is_current(self, request: ScanRequest) -> bool:
        state = self._states.get(request.document_id)
        return state is not None and state.revision == request.revision

    # Reconciliation

    def _attributes(self, match: ResolvedMatch, index: EntityIndex | None) -> dict[str, str]:
        attributes = {"pattern_id": match.pattern_id, "kind": match.kind.value}
        entity = index.entity(match.entity_id) if index is not None else None
        if entity is not None:
            attributes["title"] = tooltip_for(entity, self.config.tooltip_max_chars)
            attributes["entity_type"] = entity.type.value
        return attributes

    def apply(self, result: ScanResult, index: EntityIndex | None = None) -> bool:
        """
        Reconcile a scan result against the document's marks.

        Args:
            result: Resolved matches in document-absolute offsets.
            index: Index the scan ran against, used for mark attributes.

        Returns:
            True if applied, False if the result was stale and dropped.

        Raises:
            StaleApplyAborted: If the document no longer matches the request
                snapshot or a mark call failed. No marks are left changed.
        """
        request = result.request
        if not self.is_current(request):
            get_metrics().record_stale_discard()
            logger.debug(
                "Discarding stale scan result",
                document_id=request.document_id,
                request_revision=request.revision,
                current_revision=self._states[request.document_id].revision
                if request.document_id in self._states
                else None,
            )
            return False

        started = time.perf_counter()
        state = self._states[request.document_id]
        document = self._documents[request.document_id]
        namespace = self.config.mark_namespace

        current = document.get_text()[request.window_start : request.window_end]
        if current != request.text:
            raise StaleApplyAborted(request.document_id, "window text changed since scan")

        new = frozenset(result.matches)
        old = state.active_matches
        to_remove = sorted(old - new, key=lambda m: (m.start, m.end))
        to_add = sorted(new - old, key=lambda m: (m.start, m.end))

        removed: list[ResolvedMatch] = []
        added: list[ResolvedMatch] = []
        try:
            for match in to_remove:
                document.remove_mark(match.start, match.end, namespace=namespace)
                removed.append(match)
            for match in to_add:
                document.apply_mark(
                    match.start,
                    match.end,
                    match.entity_id,
                    namespace=namespace,
                    attributes=self._attributes(match, index),
                )
                added.append(match)
        except Exception as e:
            self._rollback(document, removed, added, index)
            raise StaleApplyAborted(request.document_id, f"mark call failed: {e}") from e

        state.active_matches = new
        state.window = Window(request.window_start, request.window_end, request.degraded)
        state.degraded = result.degraded
        state.revision += 1

        latency = time.perf_counter() - started
        get_metrics().record_apply(request.document_id, latency, len(new))
        logger.debug(
            "Applied scan result",
            document_id=request.document_id,
            revision=state.revision,
            marked=len(to_add),
            unmarked=len(to_remove),
            unchanged=len(new & old),
        )
        return True

    def _rollback(
        self,
        document: DocumentModel,
        removed: list[ResolvedMatch],
        added: list[ResolvedMatch],
        index: EntityIndex | None,
    ) -> None:
        namespace = self.config.mark_namespace
        for match in reversed(added):
            try:
                document.remove_mark(match.start, match.end, namespace=namespace)
            except Exception as e:
                logger.warning("Rollback unmark failed", start=match.start, error=str(e))
        for match in reversed(removed):
            try:
                document.apply_mark(
                    match.start,
                    match.end,
                    match.entity_id,
                    namespace=namespace,
                    attributes=self._attributes(match, index),
                )
            except Exception as e:
                logger.warning("Rollback re-mark failed", start=match.start, error=str(e))

    def clear(self, document_id: str) -> None:
        """Remove every engine mark from a document and advance its revision."""
        state = self._state(document_id)
        document = self._documents[document_id]
        for match in state.sorted_matches():
            try:
                document.remove_mark(match.start, match.end, namespace=self.config.mark_namespace)
            except Exception as e:
                logger.warning("Unmark failed while clearing", document_id=document_id, error=str(e))
        state.active_matches = frozenset()
        state.window = None
        state.degraded = False
        state.revision += 1
        get_metrics().record_apply(document_id, 0.0, 0)
