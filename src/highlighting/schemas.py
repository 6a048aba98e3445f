"""Schema definitions for the highlighting engine.

Lightweight immutable dataclasses passed between the index, window
policy, scanner, resolver and applier. Offsets are character offsets;
spans are half-open [start, end).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PatternKind(str, Enum):
    """Where a pattern came from on its entity."""

    NAME = "name"
    TAG = "tag"

    @property
    def priority(self) -> int:
        """Tie-break rank: names win over tags on identical spans."""
        return 0 if self is PatternKind.NAME else 1


@dataclass(frozen=True)
class Pattern:
    """
    A normalized search key derived from an entity name or tag.

    Attributes:
        pattern_id: Deterministic id ("<entity>:name" or "<entity>:tag:<text>").
        text: Lower-cased, whitespace-collapsed search text.
        source_entity_id: Owning entity.
        kind: NAME or TAG.
    """

    pattern_id: str
    text: str
    source_entity_id: str
    kind: PatternKind

    @property
    def sort_key(self) -> tuple[int, str, str]:
        return (self.kind.priority, self.source_entity_id, self.pattern_id)


@dataclass(frozen=True)
class RawMatch:
    """
    One occurrence of a pattern, before overlap resolution.

    Offsets are relative to the scanned window until shifted().
    """

    pattern_id: str
    start: int
    end: int
    entity_id: str = ""
    kind: PatternKind = PatternKind.NAME

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(f"Empty or inverted span: [{self.start}, {self.end})")

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "RawMatch | ResolvedMatch") -> bool:
        """True if the two half-open spans share at least one character."""
        return not (self.end <= other.start or other.end <= self.start)

    def shifted(self, offset: int) -> "RawMatch":
        """Return the same match translated by offset characters."""
        return RawMatch(
            pattern_id=self.pattern_id,
            start=self.start + offset,
            end=self.end + offset,
            entity_id=self.entity_id,
            kind=self.kind,
        )


@dataclass(frozen=True)
class ResolvedMatch:
    """
    A match that survived overlap resolution; the unit that gets marked.

    Hashable so that applied and freshly resolved sets can be diffed.

    Example:
        >>> m = ResolvedMatch(pattern_id="1:name", start=0, end=14, entity_id="1")
        >>> m.to_dict()["end"]
        14
    """

    pattern_id: str
    start: int
    end: int
    entity_id: str = ""
    kind: PatternKind = PatternKind.NAME

    @classmethod
    def from_raw(cls, raw: RawMatch) -> "ResolvedMatch":
        return cls(
            pattern_id=raw.pattern_id,
            start=raw.start,
            end=raw.end,
            entity_id=raw.entity_id,
            kind=raw.kind,
        )

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "RawMatch | ResolvedMatch") -> bool:
        """True if the two half-open spans share at least one character."""
        return not (self.end <= other.start or other.end <= self.start)

    def shifted(self, offset: int) -> "ResolvedMatch":
        """Return the same match translated by offset characters."""
        return ResolvedMatch(
            pattern_id=self.pattern_id,
            start=self.start + offset,
            end=self.end + offset,
            entity_id=self.entity_id,
            kind=self.kind,
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert match to dictionary for JSON serialization.

        Returns:
            Dictionary representation suitable for CLI or UI output.
        """
        return {
            "pattern_id": self.pattern_id,
            "entity_id": self.entity_id,
            "kind": self.kind.value,
            "start": self.start,
            "end": self.end,
        }


@dataclass(frozen=True)
class Window:
    """Document range selected for one scan."""

    start: int
    end: int
    degraded: bool = False

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, offset: int) -> bool:
        return self.start <= offset <= self.end


@dataclass(frozen=True)
class ScanRequest:
    """
    Immutable snapshot handed to the scanner.

    Attributes:
        document_id: Document the snapshot was taken from.
        window_start: Absolute offset of text[0] in the document.
        window_end: Absolute end offset of the window.
        text: Window text at submission time.
        revision: HighlightState revision at submission time.
        degraded: Window was shrunk to fit the budget.
    """

    document_id: str
    window_start: int
    window_end: int
    text: str
    revision: int
    degraded: bool = False


@dataclass(frozen=True)
class ScanResult:
    """Resolved matches for one ScanRequest, in document-absolute offsets."""

    request: ScanRequest
    matches: tuple[ResolvedMatch, ...] = field(default_factory=tuple)
    degraded: bool = False
    raw_count: int = 0
    elapsed_ms: float = 0.0

    @property
    def revision(self) -> int:
        return self.request.revision
