"""Tests for the root command and its logging options."""

from __future__ import annotations

import logging
from unittest.mock import patch

from typer.testing import CliRunner

from sf import __version__
from sf.cli.main import app
from sf.cli.output import LOG_FORMAT, configure_logging

runner = CliRunner()


class TestRootCommand:
    """Tests for the root callback."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_verbose_logs_at_debug(self) -> None:
        """--verbose configures DEBUG logging before the subcommand runs."""
        with patch("sf.cli.main.configure_logging") as configure:
            result = runner.invoke(app, ["--verbose", "sync", "--help"])

        assert result.exit_code == 0
        configure.assert_called_once_with(logging.DEBUG)

    def test_quiet_by_default(self) -> None:
        with patch("sf.cli.main.configure_logging") as configure:
            runner.invoke(app, ["sync", "--help"])

        configure.assert_not_called()

    def test_sync_group_registered(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for group in ("config", "db", "sync"):
            assert group in result.stdout


class TestConfigureLogging:
    """Tests for the shared logging setup."""

    def test_level_names_are_case_insensitive(self) -> None:
        with patch("sf.cli.output.logging.basicConfig") as basic:
            configure_logging("debug")

        basic.assert_called_once_with(level="DEBUG", format=LOG_FORMAT, datefmt="%H:%M:%S")

    def test_numeric_level_passed_through(self) -> None:
        with patch("sf.cli.output.logging.basicConfig") as basic:
            configure_logging(logging.WARNING)

        assert basic.call_args.kwargs["level"] == logging.WARNING
