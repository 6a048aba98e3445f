"""Tests for the story-bible CLI commands."""

import json

import pytest
from click.testing import CliRunner

from src.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def catalog_file(tmp_path, sample_entities):
    path = tmp_path / "catalog.json"
    records = [e.to_dict() for e in sample_entities]
    records.append({"id": "blank", "name": "  "})
    path.write_text(json.dumps(records))
    return path


@pytest.fixture
def text_file(tmp_path):
    path = tmp_path / "chapter.txt"
    path.write_text("Aria Blackwood, the scholar, entered the Whispering Library.")
    return path


def _json_payload(output: str) -> dict:
    # Log lines may precede the payload
    return json.loads(output[output.index("{\n") :])


class TestIndexCommand:
    """Tests for `story-bible index`."""

    def test_lists_patterns_and_skips(self, runner, catalog_file):
        result = runner.invoke(main, ["index", str(catalog_file)])

        assert result.exit_code == 0
        assert "Entity Index (6 patterns)" in result.output
        assert "'aria blackwood' -> 1 (name)" in result.output
        assert "'scholar' -> 1 (tag)" in result.output
        assert "blank: empty name" in result.output

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(main, ["index", str(tmp_path / "nope.json")])
        assert result.exit_code != 0


class TestHighlightCommand:
    """Tests for `story-bible highlight`."""

    def test_plain_output(self, runner, catalog_file, text_file):
        result = runner.invoke(main, ["highlight", str(text_file), "-c", str(catalog_file)])

        assert result.exit_code == 0
        assert "'Aria Blackwood' -> Aria Blackwood (name)" in result.output
        assert "'scholar' -> Aria Blackwood (tag)" in result.output
        assert "3 Story Bible references" in result.output

    def test_json_output(self, runner, catalog_file, text_file):
        result = runner.invoke(
            main, ["highlight", str(text_file), "--catalog", str(catalog_file), "--json"]
        )

        assert result.exit_code == 0
        payload = _json_payload(result.output)
        assert [m["text"] for m in payload["matches"]] == [
            "Aria Blackwood",
            "scholar",
            "Whispering Library",
        ]
        assert payload["matches"][0]["pattern_id"] == "1:name"
        assert payload["degraded"] is False

    def test_requires_catalog(self, runner, text_file):
        result = runner.invoke(main, ["highlight", str(text_file)])
        assert result.exit_code != 0


class TestLiveCommand:
    """Tests for `story-bible live`."""

    def test_settles_highlights(self, runner, catalog_file, text_file):
        result = runner.invoke(
            main, ["live", str(text_file), "-c", str(catalog_file), "--json"]
        )

        assert result.exit_code == 0
        payload = _json_payload(result.output)
        assert [m["entity_id"] for m in payload["matches"]] == ["1", "1", "2"]

    def test_single_reference_label(self, runner, catalog_file, tmp_path):
        path = tmp_path / "short.txt"
        path.write_text("Only the library.")

        result = runner.invoke(main, ["live", str(path), "-c", str(catalog_file)])

        assert result.exit_code == 0
        assert "1 Story Bible reference" in result.output
        assert "references" not in result.output
