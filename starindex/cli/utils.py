"""Shared CLI utilities.

Provides common functionality for all CLI commands.
"""

import functools
from pathlib import Path
from typing import Callable, TypeVar

import structlog
import typer

from starindex.models.config import StarIndexConfig
from starindex.observability.logging import configure_logging
from starindex.services.checkpoint_service import CheckpointService
from starindex.services.config_manager import ConfigManager, ConfigValidationError
from starindex.services.index_store import IndexStore

# Configure structured logging (reconfigured from the config file on load)
configure_logging()
logger = structlog.get_logger()

F = TypeVar("F", bound=Callable)

DEFAULT_CONFIG_PATH = Path("config/starindex.yaml")


def load_config(config_path: Path) -> StarIndexConfig:
    """Load and validate configuration, then apply its logging settings.

    Raises:
        typer.Exit: If configuration is invalid.
    """
    config_manager = ConfigManager(config_path=str(config_path))
    try:
        config = config_manager.load_config()
    except (FileNotFoundError, ConfigValidationError) as e:
        typer.secho(f"Configuration Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    configure_logging(level=config.logging.level, json_output=config.logging.json_output)
    return config


def create_index_store(config: StarIndexConfig) -> IndexStore:
    return IndexStore(Path(config.index.index_path))


def create_checkpoint_service(config: StarIndexConfig) -> CheckpointService:
    return CheckpointService(
        Path(config.index.checkpoint_path), earliest_year=config.index.earliest_year
    )


def handle_errors(func: F) -> F:
    """Decorator for consistent error handling.

    Catches exceptions and displays user-friendly error messages.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except Exception as e:
            logger.exception("command_failed")
            typer.secho(f"Error: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    return wrapper  # type: ignore[return-value]


def display_success(message: str) -> None:
    typer.secho(message, fg=typer.colors.GREEN)


def display_warning(message: str) -> None:
    typer.secho(message, fg=typer.colors.YELLOW)


def display_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)


def display_info(message: str) -> None:
    typer.secho(message, fg=typer.colors.CYAN)
