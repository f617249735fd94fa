"""Index inspection and maintenance commands.

Provides months, lookup, finalize and status.
"""

import asyncio
from pathlib import Path

import typer

from starindex.cli.utils import (
    DEFAULT_CONFIG_PATH,
    create_checkpoint_service,
    create_index_store,
    display_error,
    display_info,
    display_success,
    display_warning,
    handle_errors,
    load_config,
)
from starindex.models.config import StarIndexConfig
from starindex.observability.metrics import get_metrics_text
from starindex.services.feedbin_client import FeedbinClient
from starindex.services.fetcher import RateLimitedFetcher
from starindex.services.self_healing import MonthQueryResult, SelfHealingQuery
from starindex.utils.exceptions import CorruptIndexError
from starindex.utils.months import month_name


@handle_errors
def months_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"
    ),
):
    """List indexed months, newest first."""
    config = load_config(config_path)
    index = create_index_store(config).load()

    if len(index) == 0:
        display_warning("Index is empty. Run `build` first.")
        return

    typer.secho(f"Indexed months ({len(index)}):", bold=True)
    for entry in index.sorted_entries():
        typer.echo(
            f"  {entry.key.label()}  {month_name(entry.month):<9} {entry.year}"
            f"  page {entry.start_page:>5}  ({entry.article_count} articles)"
        )


async def _fetch_month(
    config: StarIndexConfig, query: SelfHealingQuery, year: int, month: int, page: int
) -> MonthQueryResult:
    async with FeedbinClient(config.feedbin) as client:
        fetcher = RateLimitedFetcher(client, config.fetcher)
        return await query.fetch_month(fetcher, year, month, requested_page=page)


@handle_errors
def lookup_command(
    year: int = typer.Argument(..., help="Year to look up"),
    month: int = typer.Argument(..., min=1, max=12, help="Month to look up (1-12)"),
    page: int = typer.Option(
        1, "--page", "-p", min=1, help="Page to use when the month is not indexed"
    ),
    fetch: bool = typer.Option(
        False, "--fetch", help="Fetch the page and record what it contains"
    ),
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"
    ),
):
    """Resolve the start page for a month, optionally fetching it."""
    config = load_config(config_path)
    query = SelfHealingQuery(create_index_store(config))
    label = f"{month_name(month)} {year}"

    if not fetch:
        resolved = query.resolve_page(year, month, page)
        if resolved == page and query.index_store.find_start_page(year, month) is None:
            display_warning(f"{label} is not indexed; using page {page}")
        else:
            display_success(f"{label} starts on page {resolved}")
        return

    if not config.feedbin.has_credentials:
        display_error("Feedbin credentials missing: set FEEDBIN_KEY or username/password")
        raise typer.Exit(code=1)

    result = asyncio.run(_fetch_month(config, query, year, month, page))

    source = "index" if result.from_index else "requested page"
    display_info(f"Fetched page {result.page} ({source}): {len(result.articles)} articles")
    if result.matched:
        display_success(f"{label} found on page {result.page}")
    else:
        display_warning(f"{label} not present on page {result.page}")
    if result.updated_months:
        display_info(f"Index updated: {', '.join(result.updated_months)}")


@handle_errors
def finalize_command(
    source: Path = typer.Argument(..., help="Index file to merge into the store"),
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"
    ),
):
    """Merge a temporary or legacy index file into the persisted index."""
    config = load_config(config_path)
    store = create_index_store(config)

    try:
        changed = store.import_file(source)
    except FileNotFoundError as e:
        display_error(str(e))
        raise typer.Exit(code=1)
    except CorruptIndexError as e:
        display_error(f"Cannot import: {e}")
        raise typer.Exit(code=1)

    if changed:
        display_success(f"Merged {len(changed)} month(s) into {store.index_path}")
    else:
        display_info("Index already up to date")


@handle_errors
def status_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"
    ),
    metrics: bool = typer.Option(
        False, "--metrics", help="Print Prometheus metrics for this process"
    ),
):
    """Show index and checkpoint status."""
    config = load_config(config_path)
    index = create_index_store(config).load()
    checkpoint = create_checkpoint_service(config).load()

    typer.secho("Index", bold=True)
    typer.echo(f"  Path: {config.index.index_path}")
    typer.echo(f"  Months: {len(index)}")
    typer.echo(f"  Total articles: {index.total_articles}")
    typer.echo(f"  Last updated: {index.last_updated.isoformat()}")

    months = index.months()
    if months:
        typer.echo(f"  Range: {months[-1].label()} .. {months[0].label()}")

    typer.echo("")
    typer.secho("Build", bold=True)
    if checkpoint is None:
        typer.echo("  No build in progress")
    else:
        current = checkpoint.current_month.label() if checkpoint.current_month else "-"
        typer.echo(f"  Checkpoint mode: {checkpoint.mode.value}")
        typer.echo(f"  Last page processed: {checkpoint.last_page_processed}")
        typer.echo(f"  Current month: {current}")
        typer.echo(f"  Remaining months: {len(checkpoint.remaining_months)}")
        display_warning("  Run `resume` to continue the build")

    if metrics:
        typer.echo("")
        typer.echo(get_metrics_text().decode("utf-8"))
