"""BIMClassify CLI.

Commands:
- init: Initialize database schema
- hash: Compute the cache key for a categorical tuple
- patterns: List corpus patterns (paged)
- pattern-count: Count distinct patterns
- cache-stats: Show classification cache statistics
- invalidate: Drop a cached suggestion by pattern hash
- reset-stats: Clear cache statistics counters
- pending: List suggestions awaiting review
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from bimclassify.cache.client import close_redis, get_classification_cache
from bimclassify.canonical.pattern_hash import pattern_hash
from bimclassify.config import get_config
from bimclassify.core.logging import configure_logging
from bimclassify.db.connection import close_db, get_session, init_db
from bimclassify.elements.repository import SqlElementRepository
from bimclassify.errors import BIMClassifyError, StoreUnavailableError
from bimclassify.patterns.aggregator import PatternAggregator
from bimclassify.suggestions.repository import SuggestionRepository

app = typer.Typer(
    name="bimclassify",
    help="BIMClassify - pattern-deduplicated BIM classification suggestions",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main() -> None:
    """Configure logging before any command runs."""
    config = get_config()
    configure_logging(config.log_level, json_format=config.log_format == "json")


def _fmt(value: float | None) -> str:
    return "-" if value is None else f"{value:g}"


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        try:
            if drop:
                console.print("[yellow]Dropping existing tables...[/yellow]")
            await init_db(drop=drop)
        finally:
            await close_db()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="hash")
def hash_cmd(
    category: str = typer.Option(..., "--category", help="BIM category"),
    family: str | None = typer.Option(None, "--family"),
    type_name: str | None = typer.Option(None, "--type"),
    material: str | None = typer.Option(None, "--material"),
    location_type: str | None = typer.Option(None, "--location"),
):
    """Compute the pattern hash (cache key) for a categorical tuple."""
    try:
        key = pattern_hash(category, family, type_name, material, location_type)
    except BIMClassifyError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)
    console.print(key)


@app.command()
def patterns(
    skip: int = typer.Option(0, "--skip", help="Patterns to skip"),
    take: int = typer.Option(50, "--take", help="Page size"),
):
    """List distinct patterns across the corpus, largest first."""

    async def _list():
        try:
            async with get_session() as session:
                aggregator = PatternAggregator(
                    SqlElementRepository(session),
                    sample_size=get_config().patterns.sample_size,
                )
                return await aggregator.enumerate_all_patterns(skip=skip, take=take)
        finally:
            await close_db()

    page = asyncio.run(_list())

    table = Table(title=f"Patterns {skip + 1}-{skip + len(page)}")
    table.add_column("Hash", style="cyan")
    table.add_column("Category")
    table.add_column("Family")
    table.add_column("Type")
    table.add_column("Material")
    table.add_column("Location")
    table.add_column("Elements", justify="right")
    table.add_column("Length (mm)", justify="right")

    for pattern in page:
        length = pattern.dimension_stats.length if pattern.dimension_stats else None
        table.add_row(
            pattern.pattern_hash,
            pattern.category,
            pattern.family or "-",
            pattern.type_name or "-",
            pattern.material or "-",
            pattern.location_type or "-",
            str(pattern.element_count),
            f"{_fmt(length.min)}-{_fmt(length.max)}" if length else "-",
        )

    console.print(table)


@app.command(name="pattern-count")
def pattern_count():
    """Count distinct patterns across the corpus."""

    async def _count():
        try:
            async with get_session() as session:
                return await PatternAggregator(SqlElementRepository(session)).count_distinct_patterns()
        finally:
            await close_db()

    console.print(f"[bold]{asyncio.run(_count())}[/bold] distinct patterns")


@app.command(name="cache-stats")
def cache_stats():
    """Show classification cache hit/miss statistics."""

    async def _stats():
        try:
            return await get_classification_cache().get_statistics()
        finally:
            await close_redis()

    try:
        stats = asyncio.run(_stats())
    except StoreUnavailableError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Classification Cache")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Hits", str(stats.hit_count))
    table.add_row("Misses", str(stats.miss_count))
    table.add_row("Hit rate", f"{stats.hit_rate:.1%}")
    table.add_row("Items", str(stats.total_items))
    console.print(table)


@app.command()
def invalidate(
    hashes: list[str] = typer.Argument(..., help="Pattern hashes to invalidate"),
):
    """Drop cached suggestions (idempotent)."""

    async def _invalidate():
        cache = get_classification_cache()
        try:
            for value in hashes:
                await cache.invalidate(value)
                console.print(f"  [green]✓[/green] {value}")
        finally:
            await close_redis()

    try:
        asyncio.run(_invalidate())
    except StoreUnavailableError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


@app.command(name="reset-stats")
def reset_stats():
    """Clear cache statistics counters."""

    async def _reset():
        try:
            await get_classification_cache().reset_statistics()
        finally:
            await close_redis()

    asyncio.run(_reset())
    console.print("[bold green]✓[/bold green] Cache statistics reset")


@app.command()
def pending(
    limit: int = typer.Option(20, "--limit", help="Maximum suggestions to show"),
):
    """List suggestions awaiting human review."""

    async def _pending():
        try:
            async with get_session() as session:
                return await SuggestionRepository(session).list_pending(limit)
        finally:
            await close_db()

    suggestions = asyncio.run(_pending())

    if not suggestions:
        console.print("[green]No suggestions awaiting review[/green]")
        return

    table = Table(title="Pending suggestions")
    table.add_column("ID", style="dim")
    table.add_column("Element", justify="right")
    table.add_column("Commodity")
    table.add_column("Pricing")
    table.add_column("Derived", justify="right")
    table.add_column("Created")

    for suggestion in suggestions:
        table.add_row(
            str(suggestion.id),
            str(suggestion.element_id),
            suggestion.commodity_code or "-",
            suggestion.pricing_code or "-",
            str(len(suggestion.derived_items)),
            suggestion.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


if __name__ == "__main__":
    app()
