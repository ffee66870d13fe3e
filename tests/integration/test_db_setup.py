"""Integration tests for database setup and migrations."""

from __future__ import annotations

from collections.abc import Generator
from datetime import UTC, datetime
from pathlib import Path

import pytest

from sf.ledger.models import RunStatus, SyncRun
from sf.ledger.store import (
    get_db_info,
    get_migration_status,
    get_session,
    reset_engine,
    run_migrations,
)


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Generator[Path]:
    """Create a temporary database path and clean up after."""
    db_path = tmp_path / "test_ledger.db"
    yield db_path
    # Clean up the engine after each test
    reset_engine()


class TestDatabaseCreation:
    """Tests for database creation and configuration."""

    def test_run_migrations_creates_database(self, temp_db_path: Path) -> None:
        """Running migrations should create the database file."""
        assert not temp_db_path.exists()

        result = run_migrations(temp_db_path, backup=False)

        assert temp_db_path.exists()
        assert result["status"] == "success"
        assert result["applied"] == ["001", "002", "003"]

    @pytest.mark.parametrize(
        "table",
        [
            "sync_run",
            "sync_log",
            "ledger_entry",
            "membership_entry",
            "academic_session",
            "course_offering",
            "section",
            "meeting",
            "membership",
            "enrollment",
            "person",
        ],
    )
    def test_run_migrations_creates_table(self, temp_db_path: Path, table: str) -> None:
        """Migrations should create the run log, ledger and directory tables."""
        run_migrations(temp_db_path, backup=False)

        db_info = get_db_info(temp_db_path)

        assert table in str(db_info["tables"]).split(", ")

    def test_run_migrations_idempotent(self, temp_db_path: Path) -> None:
        """Running migrations twice should be safe."""
        result1 = run_migrations(temp_db_path, backup=False)
        reset_engine()
        result2 = run_migrations(temp_db_path, backup=False)

        assert result1["status"] == "success"
        assert result2["status"] == "up_to_date"

    def test_database_wal_mode(self, temp_db_path: Path) -> None:
        """Database should be configured with WAL mode."""
        run_migrations(temp_db_path, backup=False)

        db_info = get_db_info(temp_db_path)

        assert db_info["journal_mode"] == "wal"

    def test_database_foreign_keys(self, temp_db_path: Path) -> None:
        """Database should have foreign key enforcement enabled."""
        run_migrations(temp_db_path, backup=False)

        db_info = get_db_info(temp_db_path)

        assert db_info["foreign_keys"] is True


class TestMigrationStatus:
    """Tests for migration status reporting."""

    def test_status_shows_pending_before_migration(self, temp_db_path: Path) -> None:
        """Migration status should show pending migrations before running."""
        status = get_migration_status(temp_db_path)

        assert status["db_exists"] is False
        assert status["current_revision"] == "(none)"
        assert status["pending_count"] > 0
        assert "001" in status["pending_revisions"]

    def test_status_shows_up_to_date_after_migration(self, temp_db_path: Path) -> None:
        """Migration status should show up to date after running."""
        run_migrations(temp_db_path, backup=False)
        reset_engine()

        status = get_migration_status(temp_db_path)

        assert status["db_exists"] is True
        assert status["current_revision"] == "003"  # Latest migration
        assert status["head_revision"] == "003"
        assert status["pending_count"] == 0
        assert status["up_to_date"] is True


class TestSyncRunModel:
    """Tests for SyncRun model operations."""

    def test_create_sync_run(self, temp_db_path: Path) -> None:
        """Should be able to create a SyncRun record."""
        run_migrations(temp_db_path, backup=False)

        with get_session(temp_db_path) as session:
            run = SyncRun(run_id="1:1767225600", stamp=datetime(2026, 1, 1, tzinfo=UTC))
            session.add(run)
            session.commit()
            session.refresh(run)

            assert run.id is not None
            assert run.status == RunStatus.RUNNING
            assert run.batch_ok is True

    def test_mark_sync_run_finished(self, temp_db_path: Path) -> None:
        """Should be able to record a successful outcome."""
        run_migrations(temp_db_path, backup=False)

        with get_session(temp_db_path) as session:
            run = SyncRun(run_id="1:1767225600", stamp=datetime(2026, 1, 1, tzinfo=UTC))
            session.add(run)
            session.commit()

            run.mark_finished(success=True, batch_ok=True, summary="done", batch_dir="/tmp/b")
            session.commit()
            session.refresh(run)

            assert run.status == RunStatus.COMPLETE
            assert run.completed_at is not None
            assert run.summary == "done"
            assert run.batch_dir == "/tmp/b"

    def test_mark_sync_run_failed(self, temp_db_path: Path) -> None:
        """A failed run keeps its batch_ok flag."""
        run_migrations(temp_db_path, backup=False)

        with get_session(temp_db_path) as session:
            run = SyncRun(run_id="2:1767225600", stamp=datetime(2026, 1, 1, tzinfo=UTC))
            session.add(run)
            session.commit()

            run.mark_finished(success=False, batch_ok=False, summary="failed")
            session.commit()
            session.refresh(run)

            assert run.status == RunStatus.FAILED
            assert run.batch_ok is False
            assert run.batch_dir is None

    def test_sync_run_to_dict(self, temp_db_path: Path) -> None:
        """SyncRun.to_dict should return serializable data."""
        run_migrations(temp_db_path, backup=False)

        with get_session(temp_db_path) as session:
            run = SyncRun(run_id="1:1767225600", stamp=datetime(2026, 1, 1, tzinfo=UTC))
            session.add(run)
            session.commit()
            session.refresh(run)

            data = run.to_dict()

            assert data["id"] == run.id
            assert data["run_id"] == "1:1767225600"
            assert data["status"] == "running"
            assert data["stamp"] == "2026-01-01T00:00:00+00:00"
            assert "started_at" in data


class TestDatabaseInfo:
    """Tests for database info reporting."""

    def test_db_info_nonexistent(self, temp_db_path: Path) -> None:
        """db_info should report when database doesn't exist."""
        info = get_db_info(temp_db_path)

        assert info["exists"] is False
        assert info["path"] == str(temp_db_path)

    def test_db_info_after_migration(self, temp_db_path: Path) -> None:
        """db_info should report details after migration."""
        run_migrations(temp_db_path, backup=False)

        info = get_db_info(temp_db_path)

        assert info["exists"] is True
        assert info["size_bytes"] > 0
        assert info["table_count"] >= 5


class TestBackup:
    """Tests for database backup functionality."""

    def test_backup_skipped_when_up_to_date(self, temp_db_path: Path) -> None:
        """No backup is made when there is nothing to migrate."""
        run_migrations(temp_db_path, backup=False)
        reset_engine()

        result = run_migrations(temp_db_path, backup=True)

        assert result["status"] == "up_to_date"
        assert "backup_path" not in result
