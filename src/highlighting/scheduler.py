"""
Per-document scan scheduler.

State machine: IDLE -> PENDING -> SCANNING -> APPLYING -> IDLE.

- Every text or selection event (re)arms a debounce timer; a burst of
  keystrokes collapses into one scan.
- When the timer fires, a window is computed, a ScanRequest is built at
  the document's current revision, and scanner + resolver run.
- The result is applied only if its revision is still current. Text
  edits advance the revision, so a scan that was in flight during an
  edit is dropped and a fresh one is scheduled.
- Only one scan is in flight per document. Events during SCANNING or
  APPLYING set a follow-up flag; the follow-up is armed when the
  in-flight scan finishes. In-flight scans are never cancelled.
- A StaleApplyAborted during APPLYING discards the batch and re-arms
  PENDING straight away.

Runs on the editor's event loop. Scans may be moved to a worker thread
(offload_scan) without changing any of the above.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable

import structlog

from src.highlighting.applier import HighlightApplier
from src.highlighting.config import HighlightConfig
from src.highlighting.errors import StaleApplyAborted
from src.highlighting.index import EntityIndex
from src.highlighting.pipeline import run_scan
from src.highlighting.schemas import ScanRequest, ScanResult
from src.highlighting.window import bounded_window
from src.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

ScanRunner = Callable[[ScanRequest, EntityIndex, str, int], Awaitable[ScanResult]]


class SchedulerState(str, Enum):
    """Scheduler states."""

    IDLE = "idle"
    PENDING = "pending"
    SCANNING = "scanning"
    APPLYING = "applying"


class HighlightScheduler:
    """
    Debounced scan scheduler for one attached document.

    Usage:
        scheduler = HighlightScheduler("chapter-1", applier, engine.current_index)
        scheduler.notify_text_changed()   # from the editor's change handler
        await scheduler.flush()            # wait until highlights are settled

    Args:
        document_id: Attached document (must already be attached to applier).
        applier: Owner of the document's HighlightState.
        index_provider: Returns the current entity index; polled per scan.
        config: Highlight configuration. If None, uses default config.
        scan_runner: Optional coroutine replacing the default scan step.
    """

    def __init__(
        self,
        document_id: str,
        applier: HighlightApplier,
        index_provider: Callable[[], EntityIndex],
        config: HighlightConfig | None = None,
        scan_runner: ScanRunner | None = None,
    ):
        self.document_id = document_id
        self.config = config or HighlightConfig()
        self._applier = applier
        self._index_provider = index_provider
        self._scan_runner = scan_runner or self._default_runner

        self._state = SchedulerState.IDLE
        self._timer: asyncio.TimerHandle | None = None
        self._scan_task: asyncio.Task | None = None
        self._follow_up = False
        self._suspended = False
        self._closed = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._log = logger.bind(document_id=document_id)

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def suspended(self) -> bool:
        return self._suspended

    @property
    def closed(self) -> bool:
        return self._closed

    # Events

    def notify_text_changed(self) -> None:
        """Text edited: in-flight results become stale, rescan after debounce."""
        if self._closed:
            return
        self._applier.invalidate(self.document_id)
        self._arm()

    def notify_selection_changed(self) -> None:
        """Cursor or selection moved: rescan after debounce (window may move)."""
        if self._closed:
            return
        self._arm()

    def notify_catalog_changed(self) -> None:
        """Index changed: results computed with the old index are stale."""
        self.notify_text_changed()

    def _set_state(self, state: SchedulerState) -> None:
        self._state = state
        if state is SchedulerState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()

    def _arm(self, delay_ms: int | None = None) -> None:
        if self._closed or self._suspended:
            return
        if self._state in (SchedulerState.SCANNING, SchedulerState.APPLYING):
            self._follow_up = True
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._log.debug("No running event loop; scan deferred until next event")
            return
        if self._timer is not None:
            self._timer.cancel()
        delay = self.config.debounce_ms if delay_ms is None else delay_ms
        self._timer = loop.call_later(delay / 1000.0, self._on_timer)
        self._set_state(SchedulerState.PENDING)

    def _on_timer(self) -> None:
        self._timer = None
        if self._state is not SchedulerState.PENDING or self._closed:
            return
        self._set_state(SchedulerState.SCANNING)
        self._scan_task = asyncio.get_running_loop().create_task(self._scan_cycle())

    # Scan cycle

    async def _default_runner(
        self,
        request: ScanRequest,
        index: EntityIndex,
        full_text: str,
        cursor: int,
    ) -> ScanResult:
        if self.config.offload_scan:
            return await asyncio.to_thread(run_scan, request, index, full_text, cursor, self.config)
        return run_scan(request, index, full_text, cursor, self.config)

    async def _scan_cycle(self) -> None:
        try:
            document = self._applier.document(self.document_id)
            full_text = document.get_text()
            cursor = document.get_cursor_offset()
            index = self._index_provider()
            window = bounded_window(
                full_text,
                cursor,
                self._applier.window(self.document_id),
                self.config,
                overhang_words=index.overhang_words,
                word_count=document.get_word_count(),
            )
            request = self._applier.make_request(self.document_id, full_text, window)

            result = await self._scan_runner(request, index, full_text, cursor)

            if not self._applier.is_attached(self.document_id):
                return
            if not self._applier.is_current(result.request):
                # Dropped; a newer edit has already asked for a follow-up
                self._applier.apply(result, index)
                return

            self._set_state(SchedulerState.APPLYING)
            self._applier.apply(result, index)
            if result.degraded:
                self._log.info("Applied degraded scan", window_chars=len(result.request.text))

        except StaleApplyAborted as e:
            get_metrics().record_apply_abort()
            self._log.warning("Apply aborted, rescanning", reason=e.reason)
            self._follow_up = True
        except KeyError:
            # Detached while the scan was in flight
            self._log.debug("Document detached during scan")
        except Exception as e:
            self._log.error("Scan cycle failed", error=str(e), exc_info=True)
        finally:
            self._scan_task = None
            self._set_state(SchedulerState.IDLE)
            if self._follow_up and not self._closed and not self._suspended:
                self._follow_up = False
                self._arm()

    async def scan_now(self) -> None:
        """Skip the debounce: scan immediately and wait until settled."""
        if self._closed or self._suspended:
            return
        if self._state in (SchedulerState.SCANNING, SchedulerState.APPLYING):
            self._follow_up = True
        else:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._set_state(SchedulerState.SCANNING)
            self._scan_task = asyncio.get_running_loop().create_task(self._scan_cycle())
        await self.flush()

    async def flush(self) -> None:
        """Wait until no timer is armed and no scan is in flight."""
        while self._state is not SchedulerState.IDLE:
            await self._idle.wait()

    # Focus mode / shutdown

    def suspend(self) -> None:
        """Stop scheduling scans (focus mode). An in-flight scan still finishes."""
        self._suspended = True
        self._follow_up = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._state is SchedulerState.PENDING:
            self._set_state(SchedulerState.IDLE)

    def resume(self) -> None:
        """Resume scheduling and rescan."""
        if not self._suspended:
            return
        self._suspended = False
        self._arm()

    async def close(self) -> None:
        """Cancel the pending timer and wait for an in-flight scan to finish."""
        self._closed = True
        self._follow_up = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        task = self._scan_task
        if task is not None:
            await asyncio.shield(task)
        self._set_state(SchedulerState.IDLE)
