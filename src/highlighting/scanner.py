"""
Scanner: raw pattern matching of the entity index against a window.

A single left-to-right pass walks the index trie from every word-start
position of a folded view of the window. The folded view lower-cases
each character and collapses whitespace runs to one space, keeping a
map back to window offsets, so "Aria   Blackwood" still matches the
pattern "aria blackwood". Every occurrence is reported, including
nested and overlapping ones; overlap resolution happens later.

Word boundaries: a word character is any character for which
str.isalnum() is true. Apostrophes, hyphens and underscores are not
word characters, so "Aria" matches in "Aria's" and "Aria-like" but
not in "Ariadne". A boundary lies between two positions unless both
neighbouring characters are word characters.

Cost is O(window length x longest pattern length); there is no
backtracking.
"""

import logging
import time

from src.highlighting.errors import ScanBudgetExceeded
from src.highlighting.index import EntityIndex, fold_char
from src.highlighting.schemas import RawMatch

logger = logging.getLogger(__name__)

# How many start positions to walk between deadline checks
_DEADLINE_STRIDE = 2048


def fold_view(text: str) -> tuple[str, list[int], list[int]]:
    """
    Build the folded view of text.

    Returns:
        (folded, starts, ends) where folded[i] covers text[starts[i]:ends[i]].
        A collapsed whitespace run maps to one folded space spanning the run.
    """
    chars: list[str] = []
    starts: list[int] = []
    ends: list[int] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            chars.append(" ")
            starts.append(i)
            ends.append(j)
            i = j
        else:
            chars.append(fold_char(ch))
            starts.append(i)
            ends.append(i + 1)
            i += 1
    return "".join(chars), starts, ends


def _is_boundary(folded: str, pos: int) -> bool:
    if pos <= 0 or pos >= len(folded):
        return True
    return not (folded[pos - 1].isalnum() and folded[pos].isalnum())


def scan(
    window: str,
    index: EntityIndex,
    deadline: float | None = None,
) -> list[RawMatch]:
    """
    Find every occurrence of every index pattern in window.

    Args:
        window: Window text.
        index: Entity index to match against.
        deadline: Optional time.perf_counter() value after which the
            scan gives up.

    Returns:
        Raw matches with offsets relative to window, in order of start
        position, then end position, then pattern order.

    Raises:
        ScanBudgetExceeded: If deadline passes before the scan completes.
    """
    if not window or index.is_empty():
        return []

    folded, starts, ends = fold_view(window)
    root = index.root
    n = len(folded)
    matches: list[RawMatch] = []

    for pos in range(n):
        if deadline is not None and pos % _DEADLINE_STRIDE == 0 and time.perf_counter() > deadline:
            raise ScanBudgetExceeded(
                f"Scan deadline passed at {pos}/{n} characters",
                window_chars=len(window),
            )
        if not _is_boundary(folded, pos):
            continue

        node = root.children.get(folded[pos])
        end = pos + 1
        while node is not None:
            if node.outputs and _is_boundary(folded, end):
                span_start = starts[pos]
                span_end = ends[end - 1]
                for pattern in node.outputs:
                    matches.append(
                        RawMatch(
                            pattern_id=pattern.pattern_id,
                            start=span_start,
                            end=span_end,
                            entity_id=pattern.source_entity_id,
                            kind=pattern.kind,
                        )
                    )
            if end >= n:
                break
            node = node.children.get(folded[end])
            end += 1

    return matches
