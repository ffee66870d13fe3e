"""Database commands.

Commands:
- sf db migrate: Apply pending migrations
- sf db status: Show database and migration state
"""

from __future__ import annotations

import typer

from sf.config.settings import load_settings
from sf.ledger.store import get_db_info, get_migration_status, run_migrations

app = typer.Typer(
    name="db",
    help="""Database operations for sis-feed.

The ledger, run log and directory share one SQLite file
(~/.local/share/sf/ledger.db by default). Run 'sf db migrate' after install
and after every upgrade.
""",
    no_args_is_help=True,
)


def _get_db_path() -> str:
    return str(load_settings().db_path)


@app.command("migrate")
def db_migrate(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip the automatic backup taken before migrating.",
    ),
) -> None:
    """Apply pending database migrations.

    An existing database is copied to '<name>.pre_migration.backup' first
    unless --no-backup is given.
    """
    db_path = _get_db_path()
    typer.echo(f"Database: {db_path}")

    result = run_migrations(db_path, backup=not no_backup)

    if result["status"] == "up_to_date":
        typer.secho("Database is up to date.", fg=typer.colors.GREEN)
        return

    if result["status"] != "success":
        typer.secho("Migration failed!", fg=typer.colors.RED, err=True)
        typer.echo(f"Error: {result.get('error', 'unknown')}", err=True)
        if "backup_available" in result:
            typer.echo(f"Backup available at: {result['backup_available']}")
        raise typer.Exit(1)

    typer.secho(f"Applied {len(result['applied'])} migration(s):", fg=typer.colors.GREEN)
    for rev in result["applied"]:
        typer.echo(f"  - {rev}")
    if "backup_path" in result:
        typer.echo(f"Backup created: {result['backup_path']}")
    typer.echo(f"Current revision: {result.get('current_revision', 'unknown')}")


@app.command("status")
def db_status() -> None:
    """Show database file details and migration state."""
    db_path = _get_db_path()
    info = get_db_info(db_path)

    typer.echo("Database Information:")
    typer.echo(f"  Path: {info['path']}")
    typer.echo(f"  Exists: {info['exists']}")
    if info["exists"]:
        size_bytes = info.get("size_bytes", 0)
        size_kb = int(size_bytes) / 1024 if isinstance(size_bytes, int) else 0
        typer.echo(f"  Size: {size_kb:.1f} KB")
        typer.echo(f"  Tables: {info.get('tables', '(none)')}")
        typer.echo(f"  Journal mode: {info.get('journal_mode', 'unknown')}")
        typer.echo(f"  Foreign keys: {info.get('foreign_keys', 'unknown')}")

    typer.echo()

    status = get_migration_status(db_path)
    typer.echo("Migration Status:")
    typer.echo(f"  Head revision: {status['head_revision']}")
    typer.echo(f"  Current revision: {status['current_revision']}")

    pending: list[str] = status["pending_revisions"]
    if pending:
        typer.secho(f"  Pending migrations: {len(pending)}", fg=typer.colors.YELLOW)
        for rev in pending:
            typer.echo(f"    - {rev}")
    else:
        typer.secho("  Status: Up to date", fg=typer.colors.GREEN)
