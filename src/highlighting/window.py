"""
Window policy: which part of the document a rescan looks at.

Short documents are scanned whole. Long documents are scanned in a
cursor-centered slice of window_words words, with each edge pushed out
to the nearest paragraph break when one is close enough. Mentions that
fall entirely outside the window are not matched until the cursor moves
toward them.
"""

import logging
import re
from bisect import bisect_left

from src.highlighting.config import HighlightConfig
from src.highlighting.errors import ScanBudgetExceeded
from src.highlighting.schemas import Window

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\S+")


def word_spans(text: str) -> list[tuple[int, int]]:
    """Character spans of whitespace-separated words."""
    return [(m.start(), m.end()) for m in _WORD_RE.finditer(text or "")]


def count_words(text: str) -> int:
    return len(word_spans(text))


def _snap_to_word_edges(text: str, start: int, end: int) -> tuple[int, int]:
    """Grow [start, end) so neither edge falls inside a word."""
    while start > 0 and not text[start - 1].isspace() and not text[start].isspace():
        start -= 1
    while end < len(text) and end > 0 and not text[end - 1].isspace() and not text[end].isspace():
        end += 1
    return start, end


def _reuse_prior(
    text: str,
    cursor: int,
    prior: Window,
    words: list[tuple[int, int]],
    config: HighlightConfig,
    overhang: int = 0,
) -> Window | None:
    if prior.end > len(text) or prior.start >= prior.end:
        return None
    quarter = prior.length // 4
    if not (prior.start + quarter <= cursor <= prior.end - quarter):
        return None

    start, end = _snap_to_word_edges(text, prior.start, prior.end)
    starts = [s for s, _ in words]
    inside = bisect_left(starts, end) - bisect_left(starts, start)
    if inside > config.window_words + 2 * (config.paragraph_snap_words + overhang):
        return None
    return Window(start=start, end=end)


def _slice_window(
    text: str,
    cursor: int,
    words: list[tuple[int, int]],
    limit: int,
    snap_words: int,
    overhang: int = 0,
) -> Window:
    n = len(words)
    starts = [s for s, _ in words]
    ends = [e for _, e in words]

    # Word containing the cursor, or the next one after it
    idx = min(bisect_left(ends, cursor), n - 1)

    first = idx - limit // 2
    last = first + limit
    if first < 0:
        first, last = 0, min(limit, n)
    if last > n:
        last = n
        first = max(0, n - limit)

    start = words[first][0]
    end = words[last - 1][1]

    newline = text.rfind("\n", 0, start)
    para_start = newline + 1
    if first - bisect_left(starts, para_start) <= snap_words:
        start = para_start

    newline = text.find("\n", end)
    para_end = newline if newline != -1 else len(text)
    if bisect_left(starts, para_end) - last <= snap_words:
        end = para_end

    # Reach far enough past each edge that a multi-word name cut by it still matches
    if overhang:
        first_word = bisect_left(starts, start)
        start = min(start, words[max(0, first_word - overhang)][0])
        last_word = bisect_left(starts, end)
        end = max(end, words[min(n, last_word + overhang) - 1][1])

    return Window(start=start, end=end)


def compute_window(
    full_text: str,
    cursor_offset: int,
    prior_window: Window | None = None,
    config: HighlightConfig | None = None,
    *,
    window_words: int | None = None,
    overhang_words: int = 0,
    word_count: int | None = None,
) -> Window:
    """
    Compute the in-scope range for one rescan.

    Args:
        full_text: Current document text.
        cursor_offset: Cursor or selection anchor, clamped to the text.
        prior_window: Window of the previous scan; reused while the cursor
            stays in its inner half.
        config: Highlight configuration. If None, uses default config.
        window_words: Override the window size (used when shrinking to
            fit the budget). Forces the sliced path.
        overhang_words: Extra words taken past each sliced edge, normally
            the longest pattern's word count minus one.
        word_count: Document word count when the caller already knows it;
            short documents then skip tokenization.

    Returns:
        Window with absolute document offsets.

    Raises:
        ScanBudgetExceeded: If the window is larger than max_window_chars.
    """
    config = config or HighlightConfig()
    text = full_text or ""
    cursor = max(0, min(cursor_offset, len(text)))
    if window_words is None and word_count is not None and word_count < config.word_threshold:
        words = []
    else:
        words = word_spans(text)

    if not words or (window_words is None and len(words) < config.word_threshold):
        window = Window(start=0, end=len(text))
    else:
        window = None
        if prior_window is not None and window_words is None:
            window = _reuse_prior(text, cursor, prior_window, words, config, overhang_words)
        if window is None:
            # A shrunken window must not grow back out to paragraph breaks
            window = _slice_window(
                text,
                cursor,
                words,
                window_words or config.window_words,
                0 if window_words is not None else config.paragraph_snap_words,
                overhang_words,
            )

    if window.length > config.max_window_chars:
        raise ScanBudgetExceeded(
            f"Window of {window.length} chars exceeds budget of {config.max_window_chars}",
            window_chars=window.length,
        )
    return window


def _clip_around_cursor(text: str, cursor: int, budget: int) -> Window:
    """Last resort: a character window around the cursor, trimmed inward to whitespace."""
    start = max(0, cursor - budget // 2)
    end = min(len(text), start + budget)
    start = max(0, end - budget)
    if start > 0:
        space = text.find(" ", start, end)
        start = space + 1 if space != -1 else start
    if end < len(text):
        space = text.rfind(" ", start, end)
        end = space if space > start else end
    return Window(start=start, end=end, degraded=True)


def shrink_window(
    full_text: str,
    cursor_offset: int,
    config: HighlightConfig,
    words: int,
    overhang_words: int = 0,
) -> Window:
    """
    Halve the window radius until the window fits max_window_chars.

    Starts from half of words and stops at min_window_words; if even
    that is too large, falls back to a character-clipped window.
    The returned Window is always flagged degraded.
    """
    text = full_text or ""
    cursor = max(0, min(cursor_offset, len(text)))
    radius = words
    while radius > config.min_window_words:
        radius = max(config.min_window_words, radius // 2)
        try:
            window = compute_window(
                text, cursor, config=config, window_words=radius, overhang_words=overhang_words
            )
        except ScanBudgetExceeded:
            continue
        logger.info(f"Window shrunk to {radius} words ({window.length} chars)")
        return Window(start=window.start, end=window.end, degraded=True)

    logger.warning(f"Window clipped to {config.max_window_chars} chars around cursor")
    return _clip_around_cursor(text, cursor, config.max_window_chars)


def bounded_window(
    full_text: str,
    cursor_offset: int,
    prior_window: Window | None = None,
    config: HighlightConfig | None = None,
    *,
    overhang_words: int = 0,
    word_count: int | None = None,
) -> Window:
    """compute_window, recovering from a size overrun by shrinking the window."""
    config = config or HighlightConfig()
    try:
        return compute_window(
            full_text,
            cursor_offset,
            prior_window,
            config,
            overhang_words=overhang_words,
            word_count=word_count,
        )
    except ScanBudgetExceeded as e:
        logger.info(f"{e}; shrinking window")
        return shrink_window(full_text, cursor_offset, config, config.window_words, overhang_words)
