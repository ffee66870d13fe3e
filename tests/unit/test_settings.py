"""Tests for loading, validating and saving settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from sf.config.settings import (
    Settings,
    ensure_directories,
    get_default_config_path,
    get_default_intake_dir,
    load_settings,
    save_settings,
)


class TestDefaults:
    """Tests for default locations and values."""

    def test_xdg_locations(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

        assert get_default_config_path() == tmp_path / "config" / "sf" / "config.toml"
        assert get_default_intake_dir() == tmp_path / "data" / "sf" / "intake"

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "missing.toml")

        assert settings.config_path == tmp_path / "missing.toml"
        assert settings.user_removal_mode == "disable"
        assert settings.page_size == 1000
        assert settings.validate() == []


class TestValidate:
    """Tests for settings validation."""

    def test_bad_values_reported(self) -> None:
        settings = Settings(log_level="LOUD", user_removal_mode="purge", page_size=0)

        errors = settings.validate()

        assert len(errors) == 3
        assert any("log_level" in e for e in errors)
        assert any("user_removal_mode" in e for e in errors)
        assert any("page_size" in e for e in errors)


class TestRoundTrip:
    """Tests for writing and reading the TOML file."""

    def test_save_and_load(self, tmp_path: Path) -> None:
        settings = Settings(
            db_path=tmp_path / "ledger.db",
            config_path=tmp_path / "conf" / "config.toml",
            intake_dir=tmp_path / "intake",
            has_header=True,
            ignore_missing_sessions=True,
            user_removal_mode="delete",
            person_optional_fields=["id", "major"],
            section_category_map={"NONE": "Uncategorized", "LEC": "Lecture"},
        )

        path = save_settings(settings)
        loaded = load_settings(path)

        assert loaded == settings

    def test_partial_file(self, tmp_path: Path) -> None:
        """Keys missing from the file keep their defaults."""
        config_path = tmp_path / "config.toml"
        config_path.write_text('[sync]\nuser_removal_mode = "ignore"\n')

        settings = load_settings(config_path)

        assert settings.user_removal_mode == "ignore"
        assert settings.ignore_membership_removals is False
        assert settings.student_role == "S"

    def test_ensure_directories(self, tmp_path: Path) -> None:
        settings = Settings(
            db_path=tmp_path / "data" / "ledger.db",
            config_path=tmp_path / "conf" / "config.toml",
            intake_dir=tmp_path / "data" / "intake",
        )

        ensure_directories(settings)

        assert (tmp_path / "data").is_dir()
        assert (tmp_path / "conf").is_dir()
        assert settings.intake_dir.is_dir()
