#!/usr/bin/env python3
"""
Command line interface for deepsearch.

Usage:
    deepsearch search "query" --items items.json   - Rank exported items
    deepsearch search "query" -i items.json --explain
    deepsearch expand "query" [--ai]                - Show query expansion
    deepsearch synonyms "term"                      - Show synonym group
"""

import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import click
from loguru import logger
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from deepsearch import __version__
from deepsearch.engine.ai_expander import AIKeywordExpander
from deepsearch.engine.collaborators import JsonFileItemStore, StaticSettingsProvider
from deepsearch.engine.config import EngineConfig, SearchSettings
from deepsearch.engine.expansion import QueryExpander
from deepsearch.engine.models import IndexedItem
from deepsearch.engine.ollama import OllamaEmbedder
from deepsearch.engine.search import SearchEngine
from deepsearch.engine.synonyms import SynonymTable

console = Console()

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}"


def _stderr_sink(message) -> None:
    # Resolved per write so redirected streams (tests, pipes) are honored
    sys.stderr.write(message)


def setup_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(_stderr_sink, format=LOG_FORMAT, level="DEBUG" if verbose else "WARNING")


def load_config(config_path: Optional[Path]) -> EngineConfig:
    try:
        return EngineConfig.load(config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)


def resolve_settings(config: EngineConfig, ai: Optional[bool],
                     use_synonyms: Optional[bool] = None) -> SearchSettings:
    update = {}
    if ai is not None:
        update["ollama_enabled"] = ai
    if use_synonyms is not None:
        update["synonym_expansion"] = use_synonyms
    if not update:
        return config.settings
    return config.settings.model_copy(update=update)


@click.group()
@click.version_option(__version__, prog_name="deepsearch")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """deepsearch - rank browsing history and bookmarks by relevance."""
    setup_logging(verbose)


@cli.command()
@click.argument("query")
@click.option("--items", "-i", "items_path", required=True,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="JSON export of indexed items")
@click.option("--limit", "-l", default=10, show_default=True, help="Max results to display")
@click.option("--explain", is_flag=True, help="Show per-scorer contributions")
@click.option("--ai/--no-ai", default=None, help="Override AI query expansion")
@click.option("--synonyms/--no-synonyms", "use_synonyms", default=None, help="Override synonym expansion")
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path), help="Config file")
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
def search(query: str, items_path: Path, limit: int, explain: bool, ai: Optional[bool],
           use_synonyms: Optional[bool], config_path: Optional[Path], as_json: bool):
    """Search indexed items."""
    config = load_config(config_path)
    settings = resolve_settings(config, ai, use_synonyms)
    asyncio.run(run_search(query, items_path, limit, explain, config, settings, as_json))


async def run_search(query: str, items_path: Path, limit: int, explain: bool,
                     config: EngineConfig, settings: SearchSettings, as_json: bool):
    engine = SearchEngine(
        JsonFileItemStore(items_path),
        settings=StaticSettingsProvider(settings),
        config=config,
        embedder=OllamaEmbedder(),
    )

    async with engine:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
            disable=as_json,
        ) as progress:
            progress.add_task(description="Searching...", total=None)
            if explain:
                rows = await engine.explain(query, limit)
            else:
                outcome = await engine.submit(query)

    if explain:
        if as_json:
            click.echo(json.dumps([{"url": item.url, "scores": parts} for item, parts in rows], indent=2))
        else:
            display_explanation(rows)
        return

    results = outcome.results[:limit]
    if as_json:
        click.echo(json.dumps([item.to_dict() for item in results], indent=2))
    else:
        display_results(results, outcome.latency_ms)


def _format_visit(timestamp: float) -> str:
    if not timestamp:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d")


def display_results(results: List[IndexedItem], latency_ms: float):
    """Display search results in a table."""
    if not results:
        console.print("[yellow]No results found[/yellow]")
        return

    table = Table(title=f"Search Results ({latency_ms:.1f}ms)")
    table.add_column("#", justify="right")
    table.add_column("Title", style="cyan", no_wrap=False)
    table.add_column("Host", style="magenta")
    table.add_column("Visits", justify="right")
    table.add_column("Last visit")

    for i, item in enumerate(results, 1):
        table.add_row(
            str(i),
            item.display_title or item.url,
            item.hostname,
            str(item.visit_count),
            _format_visit(item.last_visit),
        )

    console.print(table)


def display_explanation(rows: List[Tuple[IndexedItem, dict]]):
    """Display per-scorer contributions for each result."""
    if not rows:
        console.print("[yellow]No results found[/yellow]")
        return

    names = [name for name in rows[0][1] if name != "total"]
    table = Table(title="Score breakdown")
    table.add_column("Title", style="cyan", no_wrap=False)
    for name in names:
        table.add_column(name, justify="right")
    table.add_column("total", justify="right", style="bold")

    for item, parts in rows:
        table.add_row(
            item.display_title or item.url,
            *(f"{parts[name]:.3f}" for name in names),
            f"{parts['total']:.3f}",
        )

    console.print(table)


@cli.command()
@click.argument("query")
@click.option("--ai/--no-ai", default=None, help="Override AI query expansion")
@click.option("--synonyms/--no-synonyms", "use_synonyms", default=None, help="Override synonym expansion")
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path), help="Config file")
def expand(query: str, ai: Optional[bool], use_synonyms: Optional[bool], config_path: Optional[Path]):
    """Show how a query is expanded before scoring."""
    config = load_config(config_path)
    settings = resolve_settings(config, ai, use_synonyms)
    expander = QueryExpander(
        SynonymTable.from_mapping(config.custom_synonyms),
        AIKeywordExpander(config.expansion),
    )
    expanded = asyncio.run(expander.expand(query, settings))

    if not expanded.original:
        console.print("[yellow]Query has no searchable tokens[/yellow]")
        return

    console.print(f"[bold]Original:[/bold] {' '.join(expanded.original)}")
    if expanded.added:
        source = "synonyms + AI" if expanded.ai_expanded else "synonyms"
        console.print(f"[bold]Added ({source}):[/bold] {' '.join(expanded.added)}")
    else:
        console.print("[dim]No expansion terms[/dim]")


@cli.command()
@click.argument("term")
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path), help="Config file")
def synonyms(term: str, config_path: Optional[Path]):
    """List synonyms for a term."""
    config = load_config(config_path)
    table = SynonymTable.from_mapping(config.custom_synonyms)
    related = table.lookup(term.strip())

    if not related:
        console.print(f"[yellow]No synonyms for '{term}'[/yellow]")
        return

    for synonym in related:
        console.print(f"  • {synonym}")


if __name__ == "__main__":
    cli()
