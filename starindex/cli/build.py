"""Build and resume commands for the month index.

Exit codes: 0 when the build completed, 3 when it stopped at a checkpoint
and needs another ``resume``, 1 on failure.
"""

import asyncio
from pathlib import Path
from typing import Optional

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
from starindex.models.build import BuildMode, BuildResult, BuildState
from starindex.models.config import StarIndexConfig
from starindex.observability.context import correlation_id_context
from starindex.services.feedbin_client import FeedbinClient
from starindex.services.fetcher import RateLimitedFetcher
from starindex.services.index_builder import IndexBuilder

EXIT_RESUME_NEEDED = 3


async def run_build(
    config: StarIndexConfig, mode: BuildMode, reset_index: bool = False
) -> BuildResult:
    """Wire the services together and run one build."""
    index_store = create_index_store(config)
    checkpoints = create_checkpoint_service(config)

    async with FeedbinClient(config.feedbin) as client:
        fetcher = RateLimitedFetcher(client, config.fetcher)
        builder = IndexBuilder(fetcher, index_store, checkpoints, config.index)

        builder.install_signal_handlers()
        try:
            with correlation_id_context(f"build-{mode.value}"):
                return await builder.run(mode, reset_index=reset_index)
        finally:
            builder.remove_signal_handlers()


def _execute(
    config_path: Path, mode: BuildMode, max_pages: Optional[int], reset_index: bool
) -> None:
    config = load_config(config_path)

    if not config.feedbin.has_credentials:
        display_error("Feedbin credentials missing: set FEEDBIN_KEY or username/password")
        raise typer.Exit(code=1)

    if max_pages is not None:
        config.index.max_pages_per_run = max_pages

    display_info(f"Starting {mode.value} index build...")
    result = asyncio.run(run_build(config, mode, reset_index=reset_index))
    _display_result(result)

    if result.state == BuildState.FAILED:
        raise typer.Exit(code=1)
    if not result.completed:
        raise typer.Exit(code=EXIT_RESUME_NEEDED)


def _display_result(result: BuildResult) -> None:
    typer.echo("")
    if result.completed:
        typer.secho("Build completed!", fg=typer.colors.GREEN, bold=True)
    elif result.state == BuildState.FAILED:
        display_error(f"Build failed: {result.error}")
    else:
        display_warning("Build checkpointed; run `resume` to continue.")

    typer.echo(f"  Stop reason: {result.stop_reason.value if result.stop_reason else '-'}")
    typer.echo(f"  Months found: {result.entries_found}")
    typer.echo(f"  Pages scanned: {result.pages_scanned}")
    typer.echo(f"  Pages: {result.start_page}..{result.last_page_processed}"
               + (f" of {result.total_pages}" if result.total_pages is not None else ""))

    if result.skipped_pages:
        display_warning(f"  Skipped pages: {', '.join(map(str, result.skipped_pages))}")


@handle_errors
def build_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"
    ),
    resume: bool = typer.Option(
        False, "--resume", help="Continue from the saved checkpoint"
    ),
    max_pages: Optional[int] = typer.Option(
        None, "--max-pages", min=1, help="Checkpoint and stop after N pages"
    ),
    reset: bool = typer.Option(
        False, "--reset", help="Discard the existing index before a full build"
    ),
):
    """Scan the starred feed and record the start page of every month."""
    mode = BuildMode.RESUME if resume else BuildMode.FULL
    if reset and resume:
        display_error("--reset cannot be combined with --resume")
        raise typer.Exit(code=1)
    _execute(config_path, mode, max_pages, reset_index=reset)


@handle_errors
def resume_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"
    ),
    max_pages: Optional[int] = typer.Option(
        None, "--max-pages", min=1, help="Checkpoint and stop after N pages"
    ),
):
    """Resume an interrupted build from its checkpoint."""
    _execute(config_path, BuildMode.RESUME, max_pages, reset_index=False)
    display_success("Index is up to date.")
