"""
Document model collaborators.

The engine reads the document through DocumentModel and writes
highlights back through apply_mark/remove_mark in its own mark
namespace, so highlights never collide with user formatting.

InMemoryDocument is the reference implementation used by the CLI and
the tests. It does not move marks when text is edited: the engine
treats its own active match set as the source of truth and removes
marks at the offsets it applied them.
"""

from dataclasses import dataclass
from typing import Any, Callable, Literal, Protocol, runtime_checkable

from src.highlighting.window import count_words

EventKind = Literal["text", "selection"]


@dataclass(frozen=True)
class DocumentEvent:
    """Change notification: something in the document changed."""

    kind: EventKind
    document_id: str


@runtime_checkable
class DocumentModel(Protocol):
    """What the engine needs from an editor."""

    def get_text(self) -> str: ...

    def get_cursor_offset(self) -> int: ...

    def get_word_count(self) -> int: ...

    def apply_mark(
        self,
        start: int,
        end: int,
        entity_id: str,
        *,
        namespace: str,
        attributes: dict[str, Any] | None = None,
    ) -> None: ...

    def remove_mark(self, start: int, end: int, *, namespace: str) -> None: ...


Listener = Callable[[DocumentEvent], None]


class InMemoryDocument:
    """
    Plain-string document with namespaced marks and change listeners.

    Usage:
        doc = InMemoryDocument("chapter-1", "Aria Blackwood visited.")
        doc.subscribe(engine_callback)
        doc.insert(0, "Later, ")
        doc.marks("story-bible-highlight")
    """

    def __init__(self, document_id: str, text: str = "", cursor: int = 0):
        self.document_id = document_id
        self._text = text
        self._cursor = max(0, min(cursor, len(text)))
        self._marks: dict[str, dict[tuple[int, int], dict[str, Any]]] = {}
        self._listeners: list[Listener] = []

    # Read side

    def get_text(self) -> str:
        return self._text

    def get_cursor_offset(self) -> int:
        return self._cursor

    def get_word_count(self) -> int:
        return count_words(self._text)

    # Marks

    def apply_mark(
        self,
        start: int,
        end: int,
        entity_id: str,
        *,
        namespace: str,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        if not 0 <= start < end <= len(self._text):
            raise IndexError(f"Mark [{start}, {end}) outside document of length {len(self._text)}")
        self._marks.setdefault(namespace, {})[(start, end)] = {
            "entity_id": entity_id,
            **(attributes or {}),
        }

    def remove_mark(self, start: int, end: int, *, namespace: str) -> None:
        self._marks.get(namespace, {}).pop((start, end), None)

    def marks(self, namespace: str) -> dict[tuple[int, int], dict[str, Any]]:
        """Snapshot of marks in one namespace, ordered by span."""
        return dict(sorted(self._marks.get(namespace, {}).items()))

    def marked_text(self, namespace: str) -> list[str]:
        return [self._text[s:e] for s, e in self.marks(namespace)]

    # Editing

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, kind: EventKind) -> None:
        event = DocumentEvent(kind=kind, document_id=self.document_id)
        for listener in list(self._listeners):
            listener(event)

    def set_text(self, text: str, cursor: int | None = None) -> None:
        self._text = text
        self._cursor = len(text) if cursor is None else max(0, min(cursor, len(text)))
        self._emit("text")

    def replace(self, start: int, end: int, replacement: str) -> None:
        """Replace text[start:end] and leave the cursor after the replacement."""
        self._text = self._text[:start] + replacement + self._text[end:]
        self._cursor = start + len(replacement)
        self._emit("text")

    def insert(self, offset: int, text: str) -> None:
        self.replace(offset, offset, text)

    def delete(self, start: int, end: int) -> None:
        self.replace(start, end, "")

    def move_cursor(self, offset: int) -> None:
        self._cursor = max(0, min(offset, len(self._text)))
        self._emit("selection")
