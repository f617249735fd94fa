"""starindex CLI Package.

Provides the command-line interface for the Feedbin starred-articles
month index.

Usage:
    python -m starindex.cli build --config config/starindex.yaml
    python -m starindex.cli resume
    python -m starindex.cli months
    python -m starindex.cli lookup 2024 3 --fetch
    python -m starindex.cli finalize data/feedbin-month-index.tmp.json
    python -m starindex.cli status --metrics
    python -m starindex.cli validate config/starindex.yaml
"""

import typer

from starindex.cli.build import build_command, resume_command
from starindex.cli.index import (
    finalize_command,
    lookup_command,
    months_command,
    status_command,
)
from starindex.cli.validate import validate_command

# Create main app
app = typer.Typer(help="starindex: month index for Feedbin starred articles")

app.command(name="build")(build_command)
app.command(name="resume")(resume_command)
app.command(name="months")(months_command)
app.command(name="lookup")(lookup_command)
app.command(name="finalize")(finalize_command)
app.command(name="status")(status_command)
app.command(name="validate")(validate_command)

__all__ = [
    "app",
    "build_command",
    "resume_command",
    "months_command",
    "lookup_command",
    "finalize_command",
    "status_command",
    "validate_command",
]
