"""CLI entry point.

Allows running the CLI as a module: python -m starindex.cli
"""

from starindex.cli import app

if __name__ == "__main__":
    app()
