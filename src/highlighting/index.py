"""
Entity index: searchable patterns derived from the Story Bible catalog.

The index is rebuilt wholesale whenever the catalog version changes;
catalog edits are rare compared to keystrokes, so there is no
incremental path. Building is pure and deterministic: the same
snapshot always yields an equal index.

Normalization (shared with the scanner):
- characters are lower-cased one at a time (case mappings that change
  length, such as German sharp s, leave the character untouched so
  offsets stay aligned)
- runs of whitespace collapse to a single space
- leading and trailing whitespace is stripped
"""

import logging
import re
from collections import defaultdict
from typing import Iterable

from src.highlighting.config import HighlightConfig
from src.highlighting.errors import CatalogEntryInvalid
from src.highlighting.schemas import Pattern, PatternKind
from src.story_bible.schemas import Entity

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def fold_char(ch: str) -> str:
    """Lower-case a single character without changing its length."""
    low = ch.lower()
    return low if len(low) == 1 else ch


def normalize_text(text: str) -> str:
    """Lower-case and collapse whitespace runs to one space."""
    collapsed = _WHITESPACE_RE.sub(" ", text or "").strip()
    return "".join(fold_char(ch) for ch in collapsed)


class _TrieNode:
    __slots__ = ("children", "outputs")

    def __init__(self) -> None:
        self.children: dict[str, "_TrieNode"] = {}
        self.outputs: tuple[Pattern, ...] = ()


class EntityIndex:
    """
    Immutable mapping from normalized pattern text to the owning patterns.

    Also carries the catalog version it was built from, the tally of
    skipped entries, and a character trie over all pattern texts that
    the scanner walks.

    Usage:
        >>> index = build_index([Entity(id="1", display_name="Aria Blackwood")])
        >>> [p.pattern_id for p in index.lookup("ARIA  blackwood")]
        ['1:name']
    """

    def __init__(
        self,
        by_text: dict[str, tuple[Pattern, ...]],
        entities: dict[str, Entity],
        version: int = 0,
        skipped: tuple[CatalogEntryInvalid, ...] = (),
        skipped_tags: int = 0,
    ):
        self._by_text = dict(sorted(by_text.items()))
        self._by_id = {p.pattern_id: p for ps in self._by_text.values() for p in ps}
        self._entities = dict(entities)
        self._version = version
        self._skipped = skipped
        self._skipped_tags = skipped_tags
        self._root = self._build_trie()
        self._max_length = max((len(t) for t in self._by_text), default=0)
        self._max_words = max((t.count(" ") + 1 for t in self._by_text), default=0)

    def _build_trie(self) -> _TrieNode:
        root = _TrieNode()
        for text, patterns in self._by_text.items():
            node = root
            for ch in text:
                node = node.children.setdefault(ch, _TrieNode())
            node.outputs = patterns
        return root

    @property
    def version(self) -> int:
        """Catalog version this index was built from."""
        return self._version

    @property
    def skipped(self) -> tuple[CatalogEntryInvalid, ...]:
        """Entries that were not indexed, in catalog order."""
        return self._skipped

    @property
    def skipped_count(self) -> int:
        return len(self._skipped)

    @property
    def skipped_tags(self) -> int:
        return self._skipped_tags

    @property
    def root(self) -> _TrieNode:
        return self._root

    @property
    def max_pattern_length(self) -> int:
        return self._max_length

    @property
    def max_pattern_words(self) -> int:
        """Word count of the longest pattern (0 when empty)."""
        return self._max_words

    @property
    def overhang_words(self) -> int:
        """Words a window edge must reach past so no pattern is cut in half."""
        return max(0, self._max_words - 1)

    @property
    def patterns(self) -> tuple[Pattern, ...]:
        """All patterns ordered by text, then owner."""
        return tuple(p for ps in self._by_text.values() for p in ps)

    @property
    def texts(self) -> tuple[str, ...]:
        return tuple(self._by_text)

    def lookup(self, text: str) -> tuple[Pattern, ...]:
        """Patterns whose normalized text equals normalize_text(text)."""
        return self._by_text.get(normalize_text(text), ())

    def pattern(self, pattern_id: str) -> Pattern | None:
        return self._by_id.get(pattern_id)

    def entity(self, entity_id: str) -> Entity | None:
        return self._entities.get(entity_id)

    def is_empty(self) -> bool:
        return not self._by_text

    def __len__(self) -> int:
        return len(self._by_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EntityIndex):
            return NotImplemented
        return (
            self._version == other._version
            and self._by_text == other._by_text
            and self._skipped == other._skipped
            and self._skipped_tags == other._skipped_tags
        )

    def __hash__(self) -> int:
        return hash((self._version, tuple(self._by_text)))

    def __repr__(self) -> str:
        return (
            f"EntityIndex(version={self._version}, patterns={len(self)}, "
            f"skipped={self.skipped_count})"
        )


def _entity_patterns(
    entity: Entity,
    config: HighlightConfig,
) -> tuple[list[Pattern], int]:
    """Derive name and tag patterns for one valid entity; returns (patterns, dropped tags)."""
    patterns: list[Pattern] = []
    seen: set[str] = set()
    dropped_tags = 0

    name_text = normalize_text(entity.display_name)
    if len(name_text) >= config.min_pattern_length:
        patterns.append(
            Pattern(
                pattern_id=f"{entity.id}:name",
                text=name_text,
                source_entity_id=entity.id,
                kind=PatternKind.NAME,
            )
        )
    seen.add(name_text)

    tags = entity.tags
    if len(tags) > config.max_tags_per_entity:
        dropped_tags += len(tags) - config.max_tags_per_entity
        tags = tags[: config.max_tags_per_entity]

    for tag in tags:
        if not isinstance(tag, str):
            dropped_tags += 1
            logger.warning(f"Dropping non-text tag on entry {entity.id!r}: {tag!r}")
            continue
        stripped = tag.strip()
        if not stripped:
            continue
        if len(stripped) > config.max_tag_length:
            dropped_tags += 1
            logger.warning(
                f"Dropping tag on entry {entity.id!r}: longer than "
                f"{config.max_tag_length} characters"
            )
            continue
        tag_text = normalize_text(stripped)
        if len(tag_text) < config.min_pattern_length or tag_text in seen:
            continue
        seen.add(tag_text)
        patterns.append(
            Pattern(
                pattern_id=f"{entity.id}:tag:{tag_text}",
                text=tag_text,
                source_entity_id=entity.id,
                kind=PatternKind.TAG,
            )
        )

    return patterns, dropped_tags


def validate_entity(entity: Entity, config: HighlightConfig) -> CatalogEntryInvalid | None:
    """Return the reason an entry cannot be indexed, or None if it is valid."""
    name = (entity.display_name or "").strip()
    if not name:
        return CatalogEntryInvalid(entity.id, "empty name")
    if len(name) > config.max_name_length:
        return CatalogEntryInvalid(
            entity.id, f"name longer than {config.max_name_length} characters"
        )
    return None


def build_index(
    entities: Iterable[Entity],
    config: HighlightConfig | None = None,
    version: int = 0,
) -> EntityIndex:
    """
    Build an EntityIndex from a catalog snapshot.

    Malformed entries are skipped and tallied rather than failing the
    build. Each surviving entry contributes one pattern for its display
    name and one per distinct tag; patterns shorter than
    min_pattern_length are left out.

    Args:
        entities: Catalog snapshot.
        config: Highlight configuration. If None, uses default config.
        version: Catalog version token the snapshot was taken at.

    Returns:
        The built index.
    """
    config = config or HighlightConfig()
    by_text: dict[str, list[Pattern]] = defaultdict(list)
    indexed: dict[str, Entity] = {}
    skipped: list[CatalogEntryInvalid] = []
    skipped_tags = 0

    for entity in entities:
        problem = validate_entity(entity, config)
        if problem is None and entity.id in indexed:
            problem = CatalogEntryInvalid(entity.id, "duplicate id")
        if problem is not None:
            logger.warning(str(problem))
            skipped.append(problem)
            continue

        indexed[entity.id] = entity
        patterns, dropped = _entity_patterns(entity, config)
        skipped_tags += dropped
        for pattern in patterns:
            by_text[pattern.text].append(pattern)

    frozen = {
        text: tuple(sorted(patterns, key=lambda p: p.sort_key))
        for text, patterns in by_text.items()
    }
    index = EntityIndex(
        by_text=frozen,
        entities=indexed,
        version=version,
        skipped=tuple(skipped),
        skipped_tags=skipped_tags,
    )
    logger.debug(
        f"Built entity index v{version}: {len(index)} patterns from "
        f"{len(indexed)} entries, {len(skipped)} skipped"
    )
    return index
