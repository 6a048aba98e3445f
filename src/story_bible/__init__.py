"""
Story Bible entity model.

Components:
- Entity / EntityType: catalog entries describing characters, locations,
  items, lore and custom story elements
- EntityCatalog: protocol the highlighting engine reads from
- InMemoryCatalog / load_catalog: reference catalog implementation
"""

from src.story_bible.catalog import EntityCatalog, InMemoryCatalog, load_catalog
from src.story_bible.schemas import Entity, EntityType

__all__ = [
    "Entity",
    "EntityType",
    "EntityCatalog",
    "InMemoryCatalog",
    "load_catalog",
]
