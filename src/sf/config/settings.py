"""Settings for sis-feed.

Installation-wide defaults live in a TOML file (~/.config/sf/config.toml by
default). Per-run overrides passed to a sync job take precedence over the
values stored here.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
VALID_USER_REMOVAL_MODES = ("disable", "delete", "ignore")


def get_default_config_path() -> Path:
    """Return the default config file location, honoring XDG_CONFIG_HOME."""
    base = os.environ.get("XDG_CONFIG_HOME")
    config_home = Path(base) if base else Path.home() / ".config"
    return config_home / "sf" / "config.toml"


def _data_home() -> Path:
    base = os.environ.get("XDG_DATA_HOME")
    data_home = Path(base) if base else Path.home() / ".local" / "share"
    return data_home / "sf"


def get_default_db_path() -> Path:
    """Return the default SQLite database location."""
    return _data_home() / "ledger.db"


def get_default_intake_dir() -> Path:
    """Return the default directory uploads are written to."""
    return _data_home() / "intake"


@dataclass
class Settings:
    """Installation-wide settings.

    The sync policy fields (ignore_missing_sessions, ignore_membership_removals,
    user_removal_mode) are defaults only; a job's property bag can override
    them for a single run.
    """

    db_path: Path = field(default_factory=get_default_db_path)
    config_path: Path = field(default_factory=get_default_config_path)
    intake_dir: Path = field(default_factory=get_default_intake_dir)
    log_level: str = "INFO"

    # Input parsing
    date_format: str = "%Y-%m-%d"
    has_header: bool = False
    page_size: int = 1000

    # Sync policy defaults
    ignore_missing_sessions: bool = False
    ignore_membership_removals: bool = False
    user_removal_mode: str = "disable"
    suspended_type: str = "suspended"

    # Person extract: named trailing fields after the six required ones.
    # "id" is treated as a preferred user id, honored only on creation.
    person_optional_fields: list[str] = field(default_factory=lambda: ["id"])
    person_id_field: str = "id"

    # Membership defaults
    student_role: str = "S"
    instructor_role: str = "I"
    default_credits: str = "0"
    default_grading_scheme: str = "Letter Grade"

    # Category defaults
    default_section_category: str = "NONE"
    section_category_map: dict[str, str] = field(
        default_factory=lambda: {"NONE": "Uncategorized"}
    )
    default_enrollment_set_category: str = "NONE"

    def validate(self) -> list[str]:
        """Check settings for problems.

        Returns:
            List of error messages; empty when the settings are usable.
        """
        errors: list[str] = []

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(
                f"Invalid log_level '{self.log_level}'. "
                f"Must be one of: {', '.join(VALID_LOG_LEVELS)}"
            )

        if self.user_removal_mode not in VALID_USER_REMOVAL_MODES:
            errors.append(
                f"Invalid user_removal_mode '{self.user_removal_mode}'. "
                f"Must be one of: {', '.join(VALID_USER_REMOVAL_MODES)}"
            )

        if self.page_size < 1:
            errors.append("page_size must be a positive integer")

        if not self.date_format:
            errors.append("date_format must not be empty")

        if not self.suspended_type:
            errors.append("suspended_type must not be empty")

        return errors

    def to_dict(self) -> dict[str, Any]:
        """Convert to a TOML-serializable dictionary."""
        return {
            "db_path": str(self.db_path),
            "intake_dir": str(self.intake_dir),
            "log_level": self.log_level,
            "input": {
                "date_format": self.date_format,
                "has_header": self.has_header,
                "page_size": self.page_size,
                "person_optional_fields": list(self.person_optional_fields),
                "person_id_field": self.person_id_field,
            },
            "sync": {
                "ignore_missing_sessions": self.ignore_missing_sessions,
                "ignore_membership_removals": self.ignore_membership_removals,
                "user_removal_mode": self.user_removal_mode,
                "suspended_type": self.suspended_type,
            },
            "membership": {
                "student_role": self.student_role,
                "instructor_role": self.instructor_role,
                "default_credits": self.default_credits,
                "default_grading_scheme": self.default_grading_scheme,
            },
            "categories": {
                "default_section_category": self.default_section_category,
                "default_enrollment_set_category": self.default_enrollment_set_category,
                "section_category_map": dict(self.section_category_map),
            },
        }


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from a TOML file.

    Missing keys fall back to their defaults; a missing file yields
    default settings.

    Args:
        config_path: Path to the config file. Defaults to the XDG location.

    Returns:
        Loaded Settings.
    """
    config_path = config_path or get_default_config_path()

    if not config_path.exists():
        logger.debug(f"No config file at {config_path}, using defaults")
        return Settings(config_path=config_path)

    with open(config_path, "rb") as f:
        data: dict[str, Any] = tomllib.load(f)

    settings = Settings(config_path=config_path)

    if "db_path" in data:
        settings.db_path = Path(data["db_path"]).expanduser()
    if "intake_dir" in data:
        settings.intake_dir = Path(data["intake_dir"]).expanduser()
    settings.log_level = data.get("log_level", settings.log_level)

    section = data.get("input", {})
    settings.date_format = section.get("date_format", settings.date_format)
    settings.has_header = bool(section.get("has_header", settings.has_header))
    settings.page_size = int(section.get("page_size", settings.page_size))
    settings.person_optional_fields = list(
        section.get("person_optional_fields", settings.person_optional_fields)
    )
    settings.person_id_field = section.get("person_id_field", settings.person_id_field)

    section = data.get("sync", {})
    settings.ignore_missing_sessions = bool(
        section.get("ignore_missing_sessions", settings.ignore_missing_sessions)
    )
    settings.ignore_membership_removals = bool(
        section.get("ignore_membership_removals", settings.ignore_membership_removals)
    )
    settings.user_removal_mode = section.get("user_removal_mode", settings.user_removal_mode)
    settings.suspended_type = section.get("suspended_type", settings.suspended_type)

    section = data.get("membership", {})
    settings.student_role = section.get("student_role", settings.student_role)
    settings.instructor_role = section.get("instructor_role", settings.instructor_role)
    settings.default_credits = str(section.get("default_credits", settings.default_credits))
    settings.default_grading_scheme = section.get(
        "default_grading_scheme", settings.default_grading_scheme
    )

    section = data.get("categories", {})
    settings.default_section_category = section.get(
        "default_section_category", settings.default_section_category
    )
    settings.default_enrollment_set_category = section.get(
        "default_enrollment_set_category", settings.default_enrollment_set_category
    )
    settings.section_category_map = dict(
        section.get("section_category_map", settings.section_category_map)
    )

    return settings


def save_settings(settings: Settings) -> Path:
    """Write settings to their config file.

    Returns:
        Path the settings were written to.
    """
    config_path = settings.config_path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "wb") as f:
        tomli_w.dump(settings.to_dict(), f)
    return config_path


def ensure_directories(settings: Settings) -> None:
    """Create the config, database and intake directories if needed."""
    settings.config_path.parent.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.intake_dir.mkdir(parents=True, exist_ok=True)
