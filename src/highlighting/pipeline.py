"""
One scan: scanner + overlap resolver over a ScanRequest, within budget.

run_scan touches no shared state, so the scheduler may run it on a
worker thread. When the scanner misses its deadline the window is
shrunk around the cursor and scanned again; the result is then flagged
degraded (it may hold fewer matches than a full scan would).
"""

import logging
import time
from dataclasses import replace

from src.highlighting.config import HighlightConfig
from src.highlighting.errors import ScanBudgetExceeded
from src.highlighting.index import EntityIndex
from src.highlighting.resolver import resolve
from src.highlighting.scanner import scan
from src.highlighting.schemas import ScanRequest, ScanResult
from src.highlighting.window import count_words, shrink_window
from src.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

_MAX_SHRINK_ATTEMPTS = 8


def _deadline(config: HighlightConfig) -> float | None:
    if config.scan_time_budget_ms <= 0:
        return None
    return time.perf_counter() + config.scan_time_budget_ms / 1000.0


def run_scan(
    request: ScanRequest,
    index: EntityIndex,
    full_text: str,
    cursor: int,
    config: HighlightConfig | None = None,
) -> ScanResult:
    """
    Scan and resolve one request.

    Args:
        request: Window snapshot to scan.
        index: Entity index to match against.
        full_text: Document text the request was cut from (needed to
            recompute a smaller window).
        cursor: Cursor offset the window was centered on.
        config: Highlight configuration. If None, uses default config.

    Returns:
        ScanResult with document-absolute matches. Its request is the
        one actually scanned, which differs from the input when the
        window had to shrink; the revision is always preserved.
    """
    config = config or HighlightConfig()
    started = time.perf_counter()
    degraded = request.degraded

    attempts = 0
    while True:
        deadline = _deadline(config) if attempts < _MAX_SHRINK_ATTEMPTS else None
        try:
            raw = scan(request.text, index, deadline)
            break
        except ScanBudgetExceeded as e:
            attempts += 1
            words = count_words(request.text)
            logger.info(f"{e}; shrinking window from {words} words")
            if words <= config.min_window_words:
                raw = scan(request.text, index)
                degraded = True
                break
            window = shrink_window(full_text, cursor, config, words, index.overhang_words)
            request = replace(
                request,
                window_start=window.start,
                window_end=window.end,
                text=full_text[window.start : window.end],
                degraded=True,
            )
            degraded = True

    resolved = resolve(raw)
    matches = tuple(m.shifted(request.window_start) for m in resolved)
    elapsed = time.perf_counter() - started

    get_metrics().record_scan(elapsed, raw=len(raw), resolved=len(matches), degraded=degraded)
    return ScanResult(
        request=request,
        matches=matches,
        degraded=degraded,
        raw_count=len(raw),
        elapsed_ms=elapsed * 1000.0,
    )
