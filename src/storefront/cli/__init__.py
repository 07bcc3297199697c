"""CLI commands for the storefront API.

Provides command-line interface using Typer:
- storefront serve: Run the API server
- storefront init-db: Create the database schema
- storefront seed: Reset the catalog to the sample data
- storefront cleanup-audit: Delete old audit log entries

Usage:
    storefront --help
    storefront serve --port 5000
    storefront init-db
    storefront seed --yes
    storefront cleanup-audit --days 90
"""

import typer

from storefront.cli.cleanup_cmd import app as cleanup_app
from storefront.cli.init_db_cmd import app as init_db_app
from storefront.cli.seed_cmd import app as seed_app
from storefront.cli.serve import app as serve_app

app = typer.Typer(
    name="storefront",
    help="Storefront: catalog API for categories and products",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")
app.add_typer(init_db_app, name="init-db")
app.add_typer(seed_app, name="seed")
app.add_typer(cleanup_app, name="cleanup-audit")


@app.callback()
def callback() -> None:
    """Storefront: catalog API for categories and products."""


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
