"""
CLI commands for migrations.

Command-line invocations are assumed pre-authorized.
"""

from pathlib import Path

import typer

from driftfix.exceptions import DriftfixError
from driftfix.initialization import Environment, initialize
from driftfix.migrations.runner import ScopeResult
from driftfix.scopes import site_scope
from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.migrations.cli")

app = typer.Typer(name="migrate", help="Run data migrations", no_args_is_help=True)

ProjectDir = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory")
Env = typer.Option(None, "--env", "-e", help="Environment name")
Network = typer.Option(None, "--network/--single-site", help="Every site of the network (default: site.multisite)")
Site = typer.Option(None, "--site", "-s", help="Only this site id")


def _load(project_dir: Path, env: str | None) -> Environment:
    try:
        return initialize(project_dir, env)
    except DriftfixError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


def _scopes(environment: Environment, network: bool | None, site: int | None):
    if site is not None:
        return [site_scope(environment.base_prefix, site)]
    return environment.scopes(network=network)


def _echo_result(result: ScopeResult) -> None:
    if result.success:
        if result.outcomes:
            typer.echo(
                f"  ✓ {result.scope_id}: {result.from_version} → {result.to_version} "
                f"({len(result.outcomes)} step(s), {result.mutations} change(s))"
            )
        else:
            typer.echo(f"  ✓ {result.scope_id}: up to date at {result.to_version}")
        return
    applied = f" after {', '.join(result.applied)}" if result.applied else ""
    typer.echo(f"  ✗ {result.scope_id}: stopped at {result.to_version}{applied}", err=True)
    typer.echo(f"     {result.error}", err=True)
    cause = getattr(result.error, "cause", None)
    if cause is not None:
        typer.echo(f"     Cause: {type(cause).__name__}: {cause}", err=True)


@app.command("run")
def run(
    project_dir: Path = ProjectDir,
    env: str | None = Env,
    network: bool | None = Network,
    site: int | None = Site,
):
    """
    Apply pending migrations.

    Examples:
        # Current site
        driftfix migrate run

        # Every site of a network
        driftfix migrate run --network
    """
    environment = _load(project_dir, env)
    try:
        report = environment.runner.run_many(_scopes(environment, network, site))
        typer.echo(f"Migrated {len(report.results)} scope(s)")
        for result in report.results:
            _echo_result(result)

        if not report.success:
            typer.echo(f"Error: migrations failed for {len(report.failed)} scope(s)", err=True)
            raise typer.Exit(1)
        typer.echo("Success: all migrations applied")
    finally:
        environment.close()


@app.command("status")
def status(
    project_dir: Path = ProjectDir,
    env: str | None = Env,
    network: bool | None = Network,
    site: int | None = Site,
):
    """Show the applied version and pending steps of each scope."""
    environment = _load(project_dir, env)
    try:
        typer.echo(f"Latest migration: {environment.registry.latest_version()}")
        for scope in _scopes(environment, network, site):
            scope_status = environment.runner.status(scope)
            last = f" ({scope_status.watermark.step_name})" if scope_status.watermark.step_name else ""
            typer.echo(f"{scope.id}: at {scope_status.watermark.version}{last}")
            if scope_status.up_to_date:
                typer.echo("  ✓ up to date")
            for step in scope_status.pending:
                typer.echo(f"  ⏳ {step.display_name}")
    finally:
        environment.close()


@app.command("apply")
def apply(
    name: str = typer.Argument(..., help="Step name, e.g. rename-css-classes"),
    project_dir: Path = ProjectDir,
    env: str | None = Env,
    network: bool | None = Network,
    site: int | None = Site,
):
    """
    Re-apply one named step regardless of the applied version.

    The applied version is not changed.
    """
    environment = _load(project_dir, env)
    failed = 0
    try:
        for scope in _scopes(environment, network, site):
            try:
                outcome = environment.runner.run_step(scope, name)
            except DriftfixError as e:
                failed += 1
                typer.echo(f"  ✗ {scope.id}: {e}", err=True)
                continue
            typer.echo(f"  ✓ {scope.id}: {name} ({outcome.mutations} change(s))")
    finally:
        environment.close()
    if failed:
        raise typer.Exit(1)


@app.command("purge")
def purge(
    project_dir: Path = ProjectDir,
    env: str | None = Env,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete all recorded migration state (applied versions, checkpoints, locks)."""
    if not yes:
        typer.confirm("Delete all recorded migration state?", abort=True)
    environment = _load(project_dir, env)
    try:
        removed = environment.state.purge()
    finally:
        environment.close()
    typer.echo(f"Removed migration state for {removed} scope(s)")
