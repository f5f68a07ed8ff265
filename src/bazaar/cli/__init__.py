"""CLI commands for the catalog service.

Provides command-line interface using Typer:
- bazaar serve: Run the API server
- bazaar cache stats: Show cache connectivity
- bazaar cache clear: Invalidate catalog cache entries

Usage:
    bazaar --help
    bazaar serve --port 8080
    bazaar cache clear --category Writing
"""

import typer

from bazaar.cli.cache_cmd import app as cache_app
from bazaar.cli.serve import app as serve_app

# Main CLI application
app = typer.Typer(
    name="bazaar",
    help="Bazaar: agent marketplace catalog with a Redis cache layer",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")
app.add_typer(cache_app, name="cache")


@app.callback()
def callback() -> None:
    """Bazaar: agent marketplace catalog with a Redis cache layer."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
