"""
driftfix serve - HTTP trigger service.

Endpoints:
- GET /health - Health check
- GET /api/v1/migrations/token - CSRF token for a run
- GET /api/v1/migrations/status - Applied version and pending steps
- POST /api/v1/migrations/run - Run pending migrations
"""

from pathlib import Path

import typer

from driftfix.service.server import run_service

app = typer.Typer(name="serve", help="Run the HTTP migration trigger", invoke_without_command=True)


@app.callback()
def serve(
    ctx: typer.Context,
    env: str | None = typer.Option(None, "--env", "-e", help="Environment name"),
    host: str | None = typer.Option(None, help="Host to bind to (default: service.host)"),
    port: int | None = typer.Option(None, help="Port to bind to (default: service.port)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """Run the HTTP migration trigger service."""
    if ctx.invoked_subcommand is None:
        try:
            run_service(project_dir=project_dir, env=env, host=host, port=port)
        except RuntimeError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from None
