"""Validate command for configuration files."""

from pathlib import Path

import typer

from starindex.cli.utils import display_error, display_success, display_warning, handle_errors
from starindex.services.config_manager import ConfigManager


@handle_errors
def validate_command(
    config_path: Path = typer.Argument(..., help="Config file to validate"),
):
    """Validate configuration file syntax and semantics."""
    try:
        manager = ConfigManager(config_path=str(config_path))
        config = manager.load_config()
    except Exception as e:
        display_error(f"Validation failed: {e}")
        raise typer.Exit(code=1)

    display_success("Configuration is valid!")
    if not config.feedbin.has_credentials:
        display_warning("No Feedbin credentials configured; build and --fetch will fail")
