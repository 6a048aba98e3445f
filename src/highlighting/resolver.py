"""Deterministic overlap resolution: longest match wins."""

from typing import Iterable

from intervaltree import IntervalTree

from src.highlighting.schemas import RawMatch, ResolvedMatch


def _resolution_key(match: RawMatch) -> tuple[int, int, int, str]:
    # Longest first, then earliest start; names beat tags, then by pattern id
    return (-match.length, match.start, match.kind.priority, match.pattern_id)


def resolve(matches: Iterable[RawMatch]) -> list[ResolvedMatch]:
    """
    Reduce raw matches to a maximal non-overlapping set.

    Matches are considered longest first (ties broken by earliest start,
    then name before tag, then pattern id) and greedily accepted when they
    do not overlap anything accepted so far. Accepted spans live in an
    interval tree, so each overlap check is logarithmic.

    Args:
        matches: Raw matches, in any order.

    Returns:
        Accepted matches sorted by start offset.
    """
    accepted = IntervalTree()

    for match in sorted(set(matches), key=_resolution_key):
        if accepted.overlaps(match.start, match.end):
            continue
        accepted.addi(match.start, match.end, match)

    return [ResolvedMatch.from_raw(iv.data) for iv in sorted(accepted)]
