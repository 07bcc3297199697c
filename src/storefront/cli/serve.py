"""CLI command for running the API server.

Usage:
    storefront serve
    storefront serve --port 8080 --reload
"""

from __future__ import annotations

import typer

from storefront.config import settings

app = typer.Typer(help="Run the storefront API server")


@app.callback(invoke_without_command=True)
def serve(
    host: str = typer.Option(settings.host, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to listen on (PORT)"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Restart on code changes"),
) -> None:
    """Serve the catalog API with uvicorn.

    Log level and format come from LOG_LEVEL and the environment; the
    database and Redis handles are opened by the application lifespan.
    """
    import uvicorn

    typer.echo(f"Storefront API ({settings.env}) on http://{host}:{port}")
    typer.echo(f"Docs: http://{host}:{port}/docs")

    uvicorn.run(
        "storefront.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )
