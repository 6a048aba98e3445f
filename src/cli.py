"""
Command-line interface for the story-bible highlighter.

Runs the highlighting engine over a text file and a JSON catalog,
mainly for inspecting what the live editor would highlight.

Usage:
    story-bible index catalog.json                       # Show indexed patterns
    story-bible highlight chapter.txt -c catalog.json    # One-shot scan
    story-bible live chapter.txt -c catalog.json         # Attach + scheduled scan
"""

import asyncio
import json
import os
from pathlib import Path

import click

from src.config.settings import get_settings
from src.observability.logging import bind_context, clear_context, setup_logging
from src.observability.metrics import get_metrics

_catalog_option = click.option(
    "--catalog",
    "-c",
    "catalog_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file holding a list of Story Bible entries",
)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Story Bible Highlighter - entity reference matching for prose."""
    if debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()

    if get_settings().metrics_enabled:
        get_metrics().start_server()


@main.command()
@click.argument("catalog_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def index(catalog_path: Path) -> None:
    """Build the entity index for a catalog and list its patterns."""
    from src.highlighting import build_index
    from src.story_bible import load_catalog

    catalog = load_catalog(catalog_path)
    idx = build_index(catalog.get_entities(), version=catalog.version)

    click.echo(f"\nEntity Index ({len(idx)} patterns):")
    click.echo("-" * 40)
    for pattern in idx.patterns:
        click.echo(f"  {pattern.text!r} -> {pattern.source_entity_id} ({pattern.kind.value})")
    click.echo("-" * 40)

    if idx.skipped:
        click.echo(click.style(f"Skipped {idx.skipped_count} entries:", fg="yellow"))
        for problem in idx.skipped:
            click.echo(f"  {problem.entity_id}: {problem.reason}")
    if idx.skipped_tags:
        click.echo(click.style(f"Dropped {idx.skipped_tags} tags", fg="yellow"))


def _print_matches(text: str, matches, engine, as_json: bool, degraded: bool) -> None:
    if as_json:
        payload = {
            "matches": [
                {**m.to_dict(), "text": text[m.start : m.end]} for m in matches
            ],
            "degraded": degraded,
        }
        click.echo(json.dumps(payload, indent=2))
        return

    idx = engine.index
    click.echo("\nMatches:")
    click.echo("-" * 40)
    for m in matches:
        entity = idx.entity(m.entity_id)
        name = entity.display_name if entity is not None else m.entity_id
        click.echo(f"  [{m.start}, {m.end}) {text[m.start:m.end]!r} -> {name} ({m.kind.value})")
    click.echo("-" * 40)
    count = len(matches)
    click.echo(f"{count} Story Bible {'reference' if count == 1 else 'references'}")
    if degraded:
        click.echo(click.style("Window shrunk to fit the scan budget; results are partial", fg="yellow"))


@main.command()
@click.argument("text_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_catalog_option
@click.option("--cursor", default=0, type=int, help="Cursor offset the window centers on")
@click.option("--json", "as_json", is_flag=True, help="Print matches as JSON")
def highlight(text_path: Path, catalog_path: Path, cursor: int, as_json: bool) -> None:
    """Scan a text file once and print the resolved matches."""
    from src.highlighting import HighlightEngine
    from src.story_bible import load_catalog

    text = text_path.read_text(encoding="utf-8")
    engine = HighlightEngine(load_catalog(catalog_path))
    result = engine.highlight_text(text, cursor)
    _print_matches(text, result.matches, engine, as_json, result.degraded)


@main.command()
@click.argument("text_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_catalog_option
@click.option("--cursor", default=0, type=int, help="Cursor offset the window centers on")
@click.option("--json", "as_json", is_flag=True, help="Print matches as JSON")
def live(text_path: Path, catalog_path: Path, cursor: int, as_json: bool) -> None:
    """Attach the file as a live document and print the settled highlights."""
    from src.highlighting import HighlightEngine, InMemoryDocument
    from src.story_bible import load_catalog

    text = text_path.read_text(encoding="utf-8")

    async def run():
        engine = HighlightEngine(load_catalog(catalog_path))
        document = InMemoryDocument(text_path.stem, text, cursor=cursor)
        engine.attach(document.document_id, document)
        await engine.flush(document.document_id)
        matches = engine.get_active_matches(document.document_id)
        degraded = engine.is_degraded(document.document_id)
        await engine.detach(document.document_id)
        return engine, matches, degraded

    bind_context(document_id=text_path.stem)
    try:
        engine, matches, degraded = asyncio.run(run())
    finally:
        clear_context()
    _print_matches(text, matches, engine, as_json, degraded)


if __name__ == "__main__":
    main()
