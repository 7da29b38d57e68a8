"""
Main CLI entry point.
"""

from pathlib import Path

import typer

from driftfix import __version__
from driftfix.bootstrap import collect_notices
from driftfix.cli import serve
from driftfix.exceptions import DriftfixError
from driftfix.initialization import initialize
from driftfix.migrations import cli as migrate_cli


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"driftfix version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="driftfix",
    help="driftfix - versioned, idempotent data migrations for GatherPress sites",
    add_completion=True,
)

app.add_typer(migrate_cli.app, name="migrate")
app.add_typer(serve.app, name="serve")


@app.command("check")
def check(
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    env: str | None = typer.Option(None, "--env", "-e", help="Environment name"),
    network: bool | None = typer.Option(None, "--network/--single-site", help="Check every site of the network"),
):
    """
    Show startup notices (version mismatch, pending migrations).

    Never applies migrations. Exits with status 1 when an error notice is raised.
    """
    try:
        environment = initialize(project_dir, env)
    except DriftfixError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    try:
        notices = collect_notices(
            environment.runner,
            environment.scopes(network=network),
            environment.config.get("companion.version"),
        )
    finally:
        environment.close()

    if not notices:
        typer.echo("✓ No notices")
        return
    for notice in notices:
        typer.echo(f"[{notice.level}] {notice.message}", err=notice.level == "error")
    if any(n.level == "error" for n in notices):
        raise typer.Exit(1)


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        help="Show version and exit.",
    ),
):
    """
    driftfix - versioned, idempotent data migrations for GatherPress sites.

    Run 'driftfix <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        if not version:
            typer.echo(ctx.get_help())
            raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
