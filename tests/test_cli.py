"""Tests for the kelthuzad command line."""

from __future__ import annotations

import signal
from unittest.mock import ANY, AsyncMock, patch

import pytest
from typer.testing import CliRunner

from kelthuzad import __version__
from kelthuzad.supervisor.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_signal_handlers():
    """Keep the CLI from replacing the test runner's SIGINT handler and logging setup."""
    with patch("kelthuzad.supervisor.cli.signal.signal") as mock_signal, \
         patch("kelthuzad.logging_config.setup_logging"):
        yield mock_signal


class TestRunCommand:

    def test_graceful_exit_code_zero(self, no_signal_handlers) -> None:
        with patch("kelthuzad.supervisor.monitor.Supervisor.run", new=AsyncMock()) as mock_run:
            result = runner.invoke(app, ["run", "-c", "echo ok", "-r", "FATAL", "-d", "0"])
        assert result.exit_code == 0, result.output
        mock_run.assert_awaited_once()
        no_signal_handlers.assert_any_call(signal.SIGINT, ANY)
        no_signal_handlers.assert_any_call(signal.SIGTERM, ANY)

    def test_invalid_regex_exits_non_zero(self) -> None:
        with patch("kelthuzad.supervisor.monitor.Supervisor.run", new=AsyncMock()) as mock_run:
            result = runner.invoke(app, ["run", "-c", "echo ok", "-r", "([bad"])
        assert result.exit_code == 1
        assert "Fatal" in result.output
        mock_run.assert_not_awaited()

    def test_negative_delay_exits_non_zero(self) -> None:
        result = runner.invoke(app, ["run", "-c", "echo ok", "-r", "FATAL", "--delay=-1"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_unknown_log_level_exits_non_zero(self) -> None:
        with patch("kelthuzad.logging_config.setup_logging",
                   side_effect=ValueError("unknown log level 'loud'")), \
             patch("kelthuzad.supervisor.monitor.Supervisor.run", new=AsyncMock()) as mock_run:
            result = runner.invoke(app, ["run", "-c", "echo ok", "-r", "FATAL", "--log-level", "loud"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        mock_run.assert_not_awaited()

    def test_missing_log_file_exits_non_zero(self, tmp_path) -> None:
        result = runner.invoke(
            app, ["run", "-c", "echo ok", "-r", "FATAL", "-p", str(tmp_path / "missing.log")]
        )
        assert result.exit_code == 1
        assert "Fatal" in result.output

    def test_unlaunchable_command_exits_non_zero(self) -> None:
        result = runner.invoke(app, ["run", "-c", "/nonexistent/kelthuzad-child", "-r", "FATAL"])
        assert result.exit_code == 1
        assert "Fatal" in result.output

    def test_command_and_regex_required(self) -> None:
        result = runner.invoke(app, ["run", "-r", "FATAL"])
        assert result.exit_code != 0


class TestVersionCommand:

    def test_prints_version(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output
