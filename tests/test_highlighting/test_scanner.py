"""Tests for the scanner."""

import time

import pytest

from src.highlighting import ScanBudgetExceeded, build_index, scan
from src.highlighting.scanner import fold_view
from src.story_bible import Entity


def _spans(text, matches):
    return [(text[m.start : m.end], m.pattern_id) for m in matches]


@pytest.fixture
def nested_index():
    """Index with a name nested inside a longer name."""
    return build_index(
        [
            Entity(id="short", display_name="Aria"),
            Entity(id="long", display_name="Aria Blackwood", tags=("scholar",)),
        ]
    )


class TestFoldView:
    """Tests for the folded text view."""

    def test_maps_offsets(self):
        folded, starts, ends = fold_view("Aa  \n B")

        assert folded == "aa b"
        assert starts == [0, 1, 2, 6]
        assert ends == [1, 2, 6, 7]

    def test_empty(self):
        assert fold_view("") == ("", [], [])


class TestScan:
    """Tests for raw pattern matching."""

    def test_reports_nested_matches(self, nested_index):
        text = "Aria Blackwood visited."
        matches = scan(text, nested_index)

        assert sorted(_spans(text, matches)) == [
            ("Aria", "short:name"),
            ("Aria Blackwood", "long:name"),
        ]

    def test_every_occurrence(self, nested_index):
        text = "Aria met Aria, then Aria left."
        matches = scan(text, nested_index)

        assert [m.start for m in matches] == [0, 9, 20]

    def test_word_boundary_anchoring(self, nested_index):
        assert scan("Ariadne laughed.", nested_index) == []
        assert scan("Malaria spread.", nested_index) == []
        assert scan("The scholars argued.", nested_index) == []

    def test_punctuation_is_a_boundary(self, nested_index):
        text = "Aria's book, (Aria) and Aria-like."
        matches = scan(text, nested_index)

        assert _spans(text, matches) == [
            ("Aria", "short:name"),
            ("Aria", "short:name"),
            ("Aria", "short:name"),
        ]

    def test_digits_are_word_characters(self):
        index = build_index([Entity(id="1", display_name="Character 5")])

        assert scan("Character 50 arrived.", index) == []
        assert len(scan("Character 5 arrived.", index)) == 1

    def test_case_insensitive(self, nested_index):
        text = "ARIA BLACKWOOD and aria blackwood"
        matches = [m for m in scan(text, nested_index) if m.pattern_id == "long:name"]

        assert [(m.start, m.end) for m in matches] == [(0, 14), (19, 33)]

    def test_whitespace_runs_match_single_space(self, nested_index):
        text = "Then Aria \n\t  Blackwood spoke."
        matches = [m for m in scan(text, nested_index) if m.pattern_id == "long:name"]

        assert len(matches) == 1
        assert text[matches[0].start : matches[0].end] == "Aria \n\t  Blackwood"

    def test_tag_match(self, nested_index):
        text = "The scholar arrived."
        (match,) = scan(text, nested_index)

        assert match.pattern_id == "long:tag:scholar"
        assert match.entity_id == "long"
        assert (match.start, match.end) == (4, 11)

    def test_shared_pattern_reports_each_owner(self):
        index = build_index(
            [
                Entity(id="a", display_name="Raven", tags=("scholar",)),
                Entity(id="b", display_name="Owl", tags=("scholar",)),
            ]
        )
        matches = scan("a scholar", index)

        assert {m.entity_id for m in matches} == {"a", "b"}
        assert {(m.start, m.end) for m in matches} == {(2, 9)}

    def test_match_at_window_edges(self, nested_index):
        matches = scan("Aria", nested_index)
        assert [(m.start, m.end) for m in matches] == [(0, 4)]

    def test_empty_inputs(self, nested_index):
        assert scan("", nested_index) == []
        assert scan("Aria Blackwood", build_index([])) == []

    def test_deadline_exceeded(self, nested_index):
        with pytest.raises(ScanBudgetExceeded):
            scan("Aria Blackwood", nested_index, deadline=time.perf_counter() - 1.0)

    def test_future_deadline_is_fine(self, nested_index):
        matches = scan("Aria", nested_index, deadline=time.perf_counter() + 60.0)
        assert len(matches) == 1

    def test_long_window(self, nested_index):
        text = ("word " * 5000) + "Aria Blackwood"
        matches = scan(text, nested_index)
        assert {m.pattern_id for m in matches} == {"short:name", "long:name"}
