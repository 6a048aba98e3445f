"""Configuration for the highlighting engine.

Uses Pydantic settings for environment-based configuration,
following the same pattern as other service configs in the project.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HighlightConfig(BaseSettings):
    """
    Configuration for Story Bible reference highlighting.

    All settings can be overridden via environment variables with HIGHLIGHT_ prefix.
    Example: HIGHLIGHT_DEBOUNCE_MS=120

    Attributes:
        debounce_ms: Quiet period after the last edit before a scan runs.
        word_threshold: Documents with fewer words are scanned whole.
        window_words: Word count of the cursor-centered window for long documents.
        paragraph_snap_words: How far (in words) a window edge may grow to
            reach a paragraph break.
        max_window_chars: Size budget for one scan window.
        scan_time_budget_ms: Time budget for one scan; 0 disables the deadline.
        min_window_words: Smallest radius the window is shrunk to when over budget.
        min_pattern_length: Shorter names/tags are not indexed.
        offload_scan: Run scans on a worker thread instead of the event loop.
    """

    model_config = SettingsConfigDict(
        env_prefix="HIGHLIGHT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Scheduling
    debounce_ms: int = Field(
        default=50,
        ge=0,
        le=5000,
        description="Debounce delay in milliseconds, re-armed on every change event.",
    )
    offload_scan: bool = Field(
        default=False,
        description="Run scan + resolve via asyncio.to_thread.",
    )

    # Window policy
    word_threshold: int = Field(
        default=1000,
        ge=1,
        description="Documents below this word count are scanned in full.",
    )
    window_words: int = Field(
        default=1000,
        ge=1,
        description="Number of words in the cursor-centered window.",
    )
    paragraph_snap_words: int = Field(
        default=200,
        ge=0,
        description="Maximum words a window edge may grow to reach a paragraph break.",
    )

    # Budgets
    max_window_chars: int = Field(
        default=200_000,
        ge=100,
        description="Windows above this size are shrunk and flagged degraded.",
    )
    scan_time_budget_ms: float = Field(
        default=250.0,
        ge=0.0,
        description="Deadline for a single scan; 0 disables the check.",
    )
    min_window_words: int = Field(
        default=100,
        ge=1,
        description="Lower bound for the shrunken window when over budget.",
    )

    # Index
    min_pattern_length: int = Field(
        default=2,
        ge=1,
        description="Names and tags shorter than this are not matched.",
    )
    max_name_length: int = Field(
        default=200,
        ge=1,
        description="Entries with longer display names are skipped as invalid.",
    )
    max_tag_length: int = Field(
        default=50,
        ge=1,
        description="Longer tags are dropped from the index.",
    )
    max_tags_per_entity: int = Field(
        default=50,
        ge=0,
        description="Only this many tags per entry are indexed.",
    )

    # Presentation
    mark_namespace: str = Field(
        default="story-bible-highlight",
        description="Mark namespace reserved for engine highlights.",
    )
    tooltip_max_chars: int = Field(
        default=200,
        ge=10,
        description="Tooltip descriptions are truncated to this many characters.",
    )
