"""Pytest fixtures for story-bible highlighter tests."""

import pytest

from src.config.settings import Settings
from src.highlighting.config import HighlightConfig
from src.story_bible.catalog import InMemoryCatalog
from src.story_bible.schemas import Entity, EntityType


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
    )


@pytest.fixture
def highlight_config() -> HighlightConfig:
    """Engine configuration with a short debounce for fast async tests."""
    return HighlightConfig(debounce_ms=5)


@pytest.fixture
def aria() -> Entity:
    """Character entry with tags."""
    return Entity(
        id="1",
        display_name="Aria Blackwood",
        type=EntityType.CHARACTER,
        description="A mysterious scholar",
        tags=("scholar", "mysterious"),
        rules=("Always speaks in riddles",),
        project_id="project1",
    )


@pytest.fixture
def library() -> Entity:
    """Location entry with tags."""
    return Entity(
        id="2",
        display_name="Whispering Library",
        type=EntityType.LOCATION,
        description="An ancient library",
        tags=("library", "ancient"),
        rules=("Books reorganize at midnight",),
        project_id="project1",
    )


@pytest.fixture
def sample_entities(aria: Entity, library: Entity) -> list[Entity]:
    """The two Story Bible entries used across tests."""
    return [aria, library]


@pytest.fixture
def catalog(sample_entities: list[Entity]) -> InMemoryCatalog:
    """In-memory catalog holding the sample entries."""
    return InMemoryCatalog(sample_entities)
