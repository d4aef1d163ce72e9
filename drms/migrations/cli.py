"""
Migration CLI
=============

Command line entry point for schema migrations (installed as drms-migrate).

Usage:
    drms-migrate up
    drms-migrate down 3
    drms-migrate rollback-last
    drms-migrate status
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import typer

from drms.config import settings
from drms.core import MigrationException
from drms.infrastructure.database import close_database, init_database
from drms.migrations.runner import MigrationRunner
from drms.migrations.versions import MIGRATIONS
from drms.shared.infrastructure.logging import setup_logging

T = TypeVar("T")

app = typer.Typer(
    name="drms-migrate",
    help="Case service schema migrations",
    no_args_is_help=True,
)

DatabaseUrlOption = typer.Option(
    None,
    "--database-url",
    envvar="DATABASE_URL",
    help="Database URL (defaults to the configured DATABASE_URL)",
)


def _run(database_url: Optional[str], action: Callable[[MigrationRunner], Awaitable[T]]) -> T:
    """Run an action against a fresh engine and always dispose of it."""
    setup_logging(settings.log_level, settings.environment)

    async def main() -> T:
        engine = init_database(database_url)
        try:
            return await action(MigrationRunner(engine, MIGRATIONS))
        finally:
            await close_database()

    try:
        return asyncio.run(main())
    except MigrationException as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(1) from exc


@app.command("up")
def migrate_up(database_url: Optional[str] = DatabaseUrlOption):
    """Apply all pending migrations."""
    applied = _run(database_url, lambda runner: runner.run_migrations())

    if not applied:
        typer.echo("Schema is up to date")
        return

    for version in applied:
        typer.echo(f"  [apply] {version:03d}")
    typer.echo(f"Applied {len(applied)} migration(s)")


@app.command("down")
def migrate_down(
    version: int = typer.Argument(..., help="Migration version to revert"),
    database_url: Optional[str] = DatabaseUrlOption,
):
    """Revert one migration."""
    _run(database_url, lambda runner: runner.rollback_migration(version))
    typer.echo(f"Rolled back migration {version:03d}")


@app.command("rollback-last")
def migrate_rollback_last(database_url: Optional[str] = DatabaseUrlOption):
    """Revert the most recently applied migration."""
    version = _run(database_url, lambda runner: runner.rollback_last())

    if version is None:
        typer.echo("No applied migrations")
        return
    typer.echo(f"Rolled back migration {version:03d}")


@app.command("status")
def migrate_status(database_url: Optional[str] = DatabaseUrlOption):
    """Show applied and pending migrations."""
    applied = set(_run(database_url, lambda runner: runner.applied_versions()))

    for migration in MIGRATIONS:
        marker = "applied" if migration.version in applied else "pending"
        typer.echo(f"  [{marker}] {migration.version:03d} {migration.name}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
