"""
Entity catalog collaborators.

The highlighting engine consumes a catalog through the EntityCatalog
protocol: a snapshot of entries plus a version token that changes
whenever an entry is added, edited or removed. InMemoryCatalog is the
reference implementation used by the CLI and the tests.
"""

import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from src.story_bible.schemas import Entity

logger = logging.getLogger(__name__)


@runtime_checkable
class EntityCatalog(Protocol):
    """Read side of a Story Bible store."""

    @property
    def version(self) -> int:
        """Token that changes on every catalog mutation."""
        ...

    def get_entities(self) -> list[Entity]:
        """Return a snapshot of all entries."""
        ...


class InMemoryCatalog:
    """
    Dict-backed catalog keyed by entity id.

    Usage:
        catalog = InMemoryCatalog([Entity(id="1", display_name="Aria")])
        catalog.upsert(Entity(id="2", display_name="Whispering Library"))
        catalog.version  # 2
    """

    def __init__(self, entities: list[Entity] | None = None):
        self._entities: dict[str, Entity] = {}
        self._version = 0
        for entity in entities or []:
            self._entities[entity.id] = entity
        if self._entities:
            self._version = 1

    @property
    def version(self) -> int:
        return self._version

    def get_entities(self) -> list[Entity]:
        return list(self._entities.values())

    def upsert(self, entity: Entity) -> None:
        """Add or replace an entry."""
        self._entities[entity.id] = entity
        self._version += 1

    def remove(self, entity_id: str) -> bool:
        """Remove an entry. Returns False if it was not present."""
        if self._entities.pop(entity_id, None) is None:
            return False
        self._version += 1
        return True

    def filter_project(self, project_id: str) -> "InMemoryCatalog":
        """Return a new catalog containing only one project's entries."""
        return InMemoryCatalog(
            [e for e in self._entities.values() if e.project_id == project_id]
        )

    def __len__(self) -> int:
        return len(self._entities)


def load_catalog(path: Path) -> InMemoryCatalog:
    """
    Load a catalog from a JSON file holding a list of entity records.

    Records that cannot be parsed (missing id, unknown type) are logged
    and skipped; empty names are kept so the index build can tally them.

    Raises:
        ValueError: If the file does not contain a JSON list.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"Catalog file must contain a JSON list: {path}")

    entities: list[Entity] = []
    for i, record in enumerate(data):
        try:
            entities.append(Entity.from_dict(record))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Skipping catalog record {i} in {path.name}: {e}")

    logger.info(f"Loaded {len(entities)} catalog entries from {path.name}")
    return InMemoryCatalog(entities)
