"""End-to-end tests for HighlightEngine."""

import asyncio
import random

import pytest

from src.highlighting import HighlightConfig, HighlightEngine, InMemoryDocument
from src.highlighting.pipeline import run_scan
from src.story_bible import Entity, EntityType, InMemoryCatalog

NAMESPACE = HighlightConfig().mark_namespace


@pytest.fixture
def engine(catalog, highlight_config):
    return HighlightEngine(catalog, highlight_config)


def _texts(text, result):
    return [text[m.start : m.end] for m in result.matches]


class TestHighlightText:
    """One-shot matching behavior."""

    def test_longest_match_wins(self, highlight_config):
        catalog = InMemoryCatalog(
            [
                Entity(id="1", display_name="Aria", type=EntityType.CHARACTER),
                Entity(id="2", display_name="Aria Blackwood", type=EntityType.CHARACTER),
            ]
        )
        engine = HighlightEngine(catalog, highlight_config)
        text = "Aria Blackwood visited."

        result = engine.highlight_text(text)

        assert [(m.start, m.end, m.entity_id) for m in result.matches] == [(0, 14, "2")]

    def test_case_insensitive(self, engine):
        text = "ARIA BLACKWOOD and aria blackwood"
        result = engine.highlight_text(text)
        assert [(m.start, m.end) for m in result.matches] == [(0, 14), (19, 33)]

    def test_tag_matching(self, engine):
        text = "The scholar arrived."
        (match,) = engine.highlight_text(text).matches

        assert match.entity_id == "1"
        assert match.pattern_id == "1:tag:scholar"

    def test_multiple_tags(self, engine):
        text = "The scholar studied the ancient texts in the library."
        assert _texts(text, engine.highlight_text(text)) == ["scholar", "ancient", "library"]

    def test_no_partial_words(self, engine):
        assert engine.highlight_text("Scholarship in the libraries.").matches == ()

    def test_empty_text(self, engine):
        assert engine.highlight_text("").matches == ()

    def test_empty_catalog(self, highlight_config):
        engine = HighlightEngine(InMemoryCatalog(), highlight_config)
        assert engine.highlight_text("Aria Blackwood").matches == ()

    def test_invalid_entries_do_not_block_others(self, highlight_config, aria):
        catalog = InMemoryCatalog([Entity(id="bad", display_name="   "), aria])
        engine = HighlightEngine(catalog, highlight_config)

        result = engine.highlight_text("Aria Blackwood")

        assert len(result.matches) == 1
        assert engine.index.skipped_count == 1

    def test_window_boundary(self, engine):
        words = ["filler"] * 1500
        words[1400:1402] = ["Aria", "Blackwood"]
        text = " ".join(words)

        assert engine.highlight_text(text, cursor=0).matches == ()

        cursor = text.index("Aria")
        assert _texts(text, engine.highlight_text(text, cursor=cursor)) == ["Aria Blackwood"]

    @pytest.mark.parametrize("name_at, cursor_at", [(999, 0), (499, 1499)])
    def test_name_across_window_edge(self, highlight_config, name_at, cursor_at):
        catalog = InMemoryCatalog(
            [
                Entity(id="a", display_name="Aria"),
                Entity(id="b", display_name="Aria Blackwood"),
            ]
        )
        engine = HighlightEngine(catalog, highlight_config)
        words = ["filler"] * 1500
        words[name_at : name_at + 2] = ["Aria", "Blackwood"]
        text = " ".join(words)
        cursor = 0 if cursor_at == 0 else len(text)

        result = engine.highlight_text(text, cursor=cursor)

        assert [(text[m.start : m.end], m.entity_id) for m in result.matches] == [
            ("Aria Blackwood", "b")
        ]

    def test_many_entries(self, highlight_config):
        entities = [
            Entity(id=str(i), display_name=f"Character {i}", tags=(f"tag{i}", f"category{i % 10}"))
            for i in range(100)
        ]
        engine = HighlightEngine(InMemoryCatalog(entities), highlight_config)
        text = "Character 50 met tag25 near category7 and Character 5."

        result = engine.highlight_text(text)

        assert _texts(text, result) == ["Character 50", "tag25", "category7", "Character 5"]

    def test_random_text_invariants(self, engine):
        rng = random.Random(1234)
        vocabulary = ["Aria", "Blackwood", "Whispering", "Library", "scholar", "the", "ancient", "x"]
        index = engine.index
        for _ in range(50):
            text = " ".join(rng.choice(vocabulary) for _ in range(40))
            matches = engine.highlight_text(text).matches

            ordered = sorted(matches, key=lambda m: m.start)
            assert all(a.end <= b.start for a, b in zip(ordered, ordered[1:]))
            for match in matches:
                assert index.pattern(match.pattern_id).text == " ".join(
                    text[match.start : match.end].lower().split()
                )


class TestIndexRefresh:
    """Catalog versioning."""

    def test_index_built_lazily_and_cached(self, engine):
        first = engine.current_index()
        assert engine.current_index() is first
        assert engine.refresh_index() is False

    def test_version_change_rebuilds(self, engine, catalog):
        before = engine.current_index()
        catalog.upsert(Entity(id="3", display_name="Obsidian Key", type=EntityType.ITEM))

        after = engine.current_index()

        assert after is not before
        assert after.version == catalog.version
        assert after.lookup("obsidian key")

    def test_force_rebuild(self, engine):
        engine.current_index()
        assert engine.refresh_index(force=True) is True

    def test_one_build_per_version(self, engine, catalog, monkeypatch):
        from src.highlighting import service

        builds = []
        original = service.build_index

        def counting_build(*args, **kwargs):
            index = original(*args, **kwargs)
            builds.append(index)
            return index

        monkeypatch.setattr(service, "build_index", counting_build)

        first = engine.current_index()
        assert engine.current_index() is first
        assert engine.refresh_index() is False
        catalog.upsert(Entity(id="3", display_name="Obsidian Key"))
        second = engine.current_index()

        assert builds == [first, second]
        assert second.version == catalog.version


class TestLiveDocuments:
    """Attached documents kept in sync with edits."""

    @pytest.mark.asyncio
    async def test_attach_scans_document(self, engine):
        doc = InMemoryDocument("doc", "Aria Blackwood visited the Whispering Library.")

        engine.attach("doc", doc)
        await engine.flush("doc")

        assert doc.marked_text(NAMESPACE) == ["Aria Blackwood", "Whispering Library"]
        assert engine.reference_label("doc") == "2 Story Bible references"

    @pytest.mark.asyncio
    async def test_edits_drive_rescans(self, engine):
        doc = InMemoryDocument("doc", "Nothing yet.")
        engine.attach("doc", doc)
        await engine.flush("doc")
        assert engine.reference_label("doc") == "0 Story Bible references"

        doc.insert(0, "Aria Blackwood. ")
        await engine.flush("doc")

        assert engine.reference_label("doc") == "1 Story Bible reference"
        assert [m.entity_id for m in engine.get_active_matches("doc")] == ["1"]

    @pytest.mark.asyncio
    async def test_typing_burst(self, engine):
        doc = InMemoryDocument("doc", "")
        engine.attach("doc", doc)

        for ch in "The scholar":
            doc.insert(len(doc.get_text()), ch)
            await asyncio.sleep(0)
        await engine.flush("doc")

        assert doc.marked_text(NAMESPACE) == ["scholar"]

    @pytest.mark.asyncio
    async def test_deleting_mention_removes_mark(self, engine):
        doc = InMemoryDocument("doc", "Aria Blackwood visited.")
        engine.attach("doc", doc)
        await engine.flush("doc")

        doc.delete(0, len("Aria Blackwood "))
        await engine.flush("doc")

        assert doc.marks(NAMESPACE) == {}
        assert engine.get_active_match_count("doc") == 0

    @pytest.mark.asyncio
    async def test_cursor_moves_window(self, engine):
        words = ["filler"] * 1500
        words[1400:1402] = ["Aria", "Blackwood"]
        doc = InMemoryDocument("doc", " ".join(words), cursor=0)
        engine.attach("doc", doc)
        await engine.flush("doc")
        assert engine.get_active_match_count("doc") == 0

        doc.move_cursor(doc.get_text().index("Aria"))
        await engine.flush("doc")

        assert doc.marked_text(NAMESPACE) == ["Aria Blackwood"]

    @pytest.mark.asyncio
    async def test_catalog_push(self, engine, catalog):
        doc = InMemoryDocument("doc", "The Obsidian Key glowed.")
        engine.attach("doc", doc)
        await engine.flush("doc")
        assert engine.get_active_match_count("doc") == 0

        catalog.upsert(Entity(id="3", display_name="Obsidian Key", type=EntityType.ITEM))
        engine.notify_catalog_changed()
        await engine.flush("doc")

        assert doc.marked_text(NAMESPACE) == ["Obsidian Key"]

    @pytest.mark.asyncio
    async def test_catalog_polled_on_next_scan(self, engine, catalog):
        doc = InMemoryDocument("doc", "The Obsidian Key glowed.")
        engine.attach("doc", doc)
        await engine.flush("doc")

        catalog.upsert(Entity(id="3", display_name="Obsidian Key"))
        doc.move_cursor(0)
        await engine.flush("doc")

        assert engine.get_active_match_count("doc") == 1

    @pytest.mark.asyncio
    async def test_focus_mode(self, engine):
        doc = InMemoryDocument("doc", "Aria Blackwood visited.")
        engine.attach("doc", doc)
        await engine.flush("doc")

        engine.set_focus_mode("doc", True)
        assert doc.marks(NAMESPACE) == {}

        doc.insert(0, "The scholar and ")
        await asyncio.sleep(0.05)
        assert engine.get_active_match_count("doc") == 0

        engine.set_focus_mode("doc", False)
        await engine.flush("doc")
        assert doc.marked_text(NAMESPACE) == ["scholar", "Aria Blackwood"]

    @pytest.mark.asyncio
    async def test_detach(self, engine):
        doc = InMemoryDocument("doc", "Aria Blackwood visited.")
        engine.attach("doc", doc)
        await engine.flush("doc")

        await engine.detach("doc")

        assert doc.marks(NAMESPACE) == {}
        with pytest.raises(KeyError):
            engine.scheduler("doc")
        # Edits after detach are ignored
        doc.insert(0, "x")

    @pytest.mark.asyncio
    async def test_documents_are_independent(self, engine):
        first = InMemoryDocument("one", "Aria Blackwood")
        second = InMemoryDocument("two", "The Whispering Library")
        engine.attach("one", first)
        engine.attach("two", second)

        await engine.flush("one")
        await engine.flush("two")
        first.set_text("Nothing here")
        await engine.flush("one")

        assert engine.get_active_match_count("one") == 0
        assert second.marked_text(NAMESPACE) == ["Whispering Library"]

    @pytest.mark.asyncio
    async def test_stale_result_never_applied(self, catalog, highlight_config):
        release = asyncio.Event()
        calls = []

        async def slow_first(request, index, full_text, cursor):
            calls.append(request)
            if len(calls) == 1:
                await release.wait()
            return run_scan(request, index, full_text, cursor, highlight_config)

        engine = HighlightEngine(catalog, highlight_config, scan_runner=slow_first)
        doc = InMemoryDocument("doc", "Aria Blackwood visited.")
        engine.attach("doc", doc)
        while not calls:
            await asyncio.sleep(0.001)

        doc.set_text("The Whispering Library stood.")
        release.set()
        await engine.flush("doc")

        assert doc.marked_text(NAMESPACE) == ["Whispering Library"]
        assert all(m.entity_id == "2" for m in engine.get_active_matches("doc"))

    @pytest.mark.asyncio
    async def test_scan_now(self, catalog):
        engine = HighlightEngine(catalog, HighlightConfig(debounce_ms=5000))
        doc = InMemoryDocument("doc", "Aria Blackwood")
        engine.attach("doc", doc)

        await asyncio.wait_for(engine.scan_now("doc"), timeout=1.0)

        assert engine.get_active_match_count("doc") == 1

    def test_attach_outside_loop_defers_first_scan(self, engine):
        doc = InMemoryDocument("doc", "Aria Blackwood")
        scheduler = engine.attach("doc", doc)

        assert engine.attach("doc", doc) is scheduler
        assert engine.get_active_match_count("doc") == 0
        assert not engine.is_degraded("doc")
