"""Database engine, sessions and migrations for sis-feed.

The ledger, run log and directory tables share one SQLite file, opened with:
- WAL journal so status queries do not block a running sync
- Foreign key enforcement
- A busy timeout for the occasional concurrent writer
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import Engine, event, text
from sqlmodel import Session, SQLModel, create_engine

if TYPE_CHECKING:
    from alembic.config import Config as AlembicConfig
    from sqlalchemy.engine.interfaces import DBAPIConnection
    from sqlalchemy.pool import ConnectionPoolEntry

logger = logging.getLogger(__name__)

# Process-wide engine, created on first use
_engine: Engine | None = None


def get_engine(db_path: Path | str, echo: bool = False) -> Engine:
    """Return the shared engine, creating it on first call.

    Args:
        db_path: Path to the SQLite database file.
        echo: If True, log every SQL statement.

    Returns:
        Engine bound to the database.
    """
    global _engine

    if _engine is not None:
        return _engine

    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    _engine = create_engine(
        f"sqlite:///{db_path}",
        echo=echo,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(_engine, "connect")
    def _configure_connection(
        dbapi_connection: DBAPIConnection,
        _connection_record: ConnectionPoolEntry,
    ) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    logger.debug(f"Opened database engine for {db_path}")
    return _engine


def reset_engine() -> None:
    """Dispose of the shared engine (tests and CLI re-targeting)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


@contextmanager
def get_session(db_path: Path | str) -> Generator[Session]:
    """Open a session against the database.

    Args:
        db_path: Path to the SQLite database file.

    Yields:
        SQLModel Session. The caller decides when to commit.
    """
    with Session(get_engine(db_path)) as session:
        yield session


def create_all_tables(db_path: Path | str) -> None:
    """Create every table from model metadata, bypassing Alembic.

    Only meant for tests that do not care about migration history.
    """
    # Table classes register themselves on import
    import sf.directory.models  # noqa: F401
    import sf.ledger.models  # noqa: F401

    SQLModel.metadata.create_all(get_engine(db_path))


def backup_database(db_path: Path | str, suffix: str | None = None) -> Path:
    """Copy the database file next to itself.

    Args:
        db_path: Path to the SQLite database file.
        suffix: Backup suffix. Defaults to a UTC timestamp.

    Returns:
        Path of the copy.

    Raises:
        FileNotFoundError: If the database file does not exist.
    """
    db_path = Path(db_path)
    if not db_path.exists():
        raise FileNotFoundError(f"Database file not found: {db_path}")

    suffix = suffix or datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    backup_path = db_path.with_suffix(f".{suffix}.backup")
    shutil.copy2(db_path, backup_path)
    logger.info(f"Backed up {db_path} to {backup_path}")
    return backup_path


def get_db_info(db_path: Path | str) -> dict[str, str | int | bool]:
    """Describe the database file: size, tables and pragmas."""
    db_path = Path(db_path)
    info: dict[str, str | int | bool] = {"path": str(db_path), "exists": db_path.exists()}
    if not db_path.exists():
        return info

    info["size_bytes"] = db_path.stat().st_size

    with get_engine(db_path).connect() as conn:
        tables = [
            row[0]
            for row in conn.execute(
                text("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
            )
        ]
        info["table_count"] = len(tables)
        info["tables"] = ", ".join(tables) if tables else "(none)"
        journal_mode = conn.execute(text("PRAGMA journal_mode")).scalar()
        info["journal_mode"] = str(journal_mode) if journal_mode else "unknown"
        info["foreign_keys"] = bool(conn.execute(text("PRAGMA foreign_keys")).scalar())

    return info


# --- Migrations ---


def get_alembic_config(db_path: Path | str) -> AlembicConfig:
    """Build the Alembic configuration for a database.

    The repository-level alembic.ini is used when present (source checkouts);
    the script location always points at the installed migrations package.
    """
    from alembic.config import Config as AlembicConfig

    import sf

    package_dir = Path(sf.__file__).parent
    alembic_ini = package_dir.parent.parent / "alembic.ini"

    config = AlembicConfig(str(alembic_ini)) if alembic_ini.exists() else AlembicConfig()
    config.set_main_option("script_location", str(package_dir / "migrations"))

    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    # Leave the application's logging setup alone
    config.attributes["configure_logger"] = False
    return config


def get_current_revision(db_path: Path | str) -> str | None:
    """Return the applied revision, or None for a fresh database."""
    from alembic.runtime.migration import MigrationContext

    db_path = Path(db_path)
    if not db_path.exists():
        return None

    with get_engine(db_path).connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def get_pending_migrations(db_path: Path | str) -> list[str]:
    """Return revisions not yet applied, oldest first."""
    from alembic.script import ScriptDirectory

    script = ScriptDirectory.from_config(get_alembic_config(db_path))
    current = get_current_revision(db_path)
    pending = [
        rev.revision for rev in script.iterate_revisions("head", current) if rev.revision != current
    ]
    pending.reverse()
    return pending


def run_migrations(db_path: Path | str, backup: bool = True) -> dict[str, Any]:
    """Upgrade the database to the latest revision.

    Args:
        db_path: Path to the SQLite database file.
        backup: Copy an existing database before migrating.

    Returns:
        Dictionary with status ('up_to_date', 'success' or 'failed'),
        applied revisions and backup location if one was made.
    """
    from alembic import command

    db_path = Path(db_path)
    current = get_current_revision(db_path)
    pending = get_pending_migrations(db_path)
    result: dict[str, Any] = {
        "db_path": str(db_path),
        "previous_revision": current or "(none)",
        "pending": pending,
        "applied": [],
    }

    if not pending:
        result["status"] = "up_to_date"
        return result

    backup_path: Path | None = None
    if backup and db_path.exists():
        backup_path = backup_database(db_path, suffix="pre_migration")
        result["backup_path"] = str(backup_path)

    try:
        command.upgrade(get_alembic_config(db_path), "head")
    except Exception as e:
        logger.error(f"Migration of {db_path} failed: {e}")
        result["status"] = "failed"
        result["error"] = str(e)
        if backup_path:
            result["backup_available"] = str(backup_path)
        return result

    result["status"] = "success"
    result["applied"] = pending
    result["current_revision"] = get_current_revision(db_path) or "(none)"
    return result


def get_migration_status(db_path: Path | str) -> dict[str, Any]:
    """Summarize head, current and pending revisions."""
    from alembic.script import ScriptDirectory

    script = ScriptDirectory.from_config(get_alembic_config(db_path))
    db_path = Path(db_path)
    heads = script.get_heads()
    pending = get_pending_migrations(db_path)

    return {
        "db_path": str(db_path),
        "db_exists": db_path.exists(),
        "head_revision": heads[0] if heads else "(none)",
        "current_revision": get_current_revision(db_path) or "(none)",
        "pending_count": len(pending),
        "pending_revisions": pending,
        "up_to_date": not pending,
    }
