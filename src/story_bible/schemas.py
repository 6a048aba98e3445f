"""Schema definitions for Story Bible entities.

Provides the closed entity-type enumeration and a lightweight dataclass
for catalog entries, with serialization methods for JSON catalogs.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def _string_list(data: dict[str, Any], key: str) -> tuple[str, ...]:
    """Read an optional list-of-strings field from a catalog record."""
    value = data.get(key)
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ValueError(f"{key!r} must be a list, got {type(value).__name__}")
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"{key!r} must hold strings, got {item!r}")
    return tuple(value)


class EntityType(str, Enum):
    """Kinds of story elements a catalog entry can describe."""

    CHARACTER = "Character"
    LOCATION = "Location"
    ITEM = "Item"
    LORE = "Lore"
    CUSTOM = "Custom"


@dataclass(frozen=True)
class Entity:
    """
    A single Story Bible entry eligible for reference matching.

    The catalog owns entries; the highlighting engine only ever sees
    read-only snapshots of them.

    Attributes:
        id: Stable catalog identifier.
        display_name: Name shown to the author and matched in prose.
        type: Closed entity type.
        tags: Ordered, de-duplicated tags; each is also matched in prose.
        rules: Free-form world rules attached to the entry.
        description: Longer description, used for highlight tooltips.
        relations: Ids of related entries.
        project_id: Owning project, if the catalog is multi-project.

    Example:
        >>> entity = Entity(
        ...     id="1",
        ...     display_name="Aria Blackwood",
        ...     type=EntityType.CHARACTER,
        ...     tags=("scholar", "mysterious"),
        ... )
        >>> entity.to_dict()["type"]
        'Character'
    """

    id: str
    display_name: str
    type: EntityType = EntityType.CUSTOM
    tags: tuple[str, ...] = ()
    rules: tuple[str, ...] = ()
    description: str = ""
    relations: tuple[str, ...] = ()
    project_id: str | None = None

    def __post_init__(self) -> None:
        # Tags form an ordered set: keep first occurrence only
        object.__setattr__(self, "tags", tuple(dict.fromkeys(self.tags)))
        object.__setattr__(self, "rules", tuple(self.rules))
        object.__setattr__(self, "relations", tuple(self.relations))

    def to_dict(self) -> dict[str, Any]:
        """
        Convert entity to dictionary for JSON serialization.

        Returns:
            Dictionary representation using the catalog's field names.
        """
        return {
            "id": self.id,
            "name": self.display_name,
            "type": self.type.value,
            "tags": list(self.tags),
            "rules": list(self.rules),
            "description": self.description,
            "relations": list(self.relations),
            "project_id": self.project_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entity":
        """
        Create entity from a catalog record.

        Accepts either ``name`` or ``display_name`` for the display name.

        Args:
            data: Dictionary with entity fields.

        Returns:
            Entity instance.

        Raises:
            KeyError: If the id is missing.
            ValueError: If the type is not one of EntityType, or tags, rules
                or relations is not a list of strings.
        """
        name = data.get("display_name", data.get("name", ""))
        return cls(
            id=str(data["id"]),
            display_name=name if isinstance(name, str) else "",
            type=EntityType(data.get("type", EntityType.CUSTOM.value)),
            tags=_string_list(data, "tags"),
            rules=_string_list(data, "rules"),
            description=data.get("description") or "",
            relations=_string_list(data, "relations"),
            project_id=data.get("project_id"),
        )
