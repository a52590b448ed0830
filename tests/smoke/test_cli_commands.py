"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work against a
throwaway sqlite database.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


@pytest.fixture
def cli_env(tmp_path):
    """Environment pointing the CLI at a temporary database."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("CARDWISE_")}
    env["CARDWISE_DATABASE_URL"] = f"sqlite:///{tmp_path / 'smoke.db'}"
    env["CARDWISE_DEFAULT_USER_ID"] = "smoke-user"
    return env


@pytest.fixture
def deck_file(tmp_path):
    path = tmp_path / "deck.json"
    path.write_text(json.dumps({
        "cards": [
            {"id": "card-01", "tags": ["heart"], "front": "Largest artery?", "back": "Aorta"},
            {"id": "card-02", "tags": ["heart"]},
            {"id": "card-03", "tags": ["lung"]},
        ]
    }))
    return path


def run_cli_command(args: list[str], env: dict, timeout: int = 60) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        args: Arguments after 'python -m cardwise.cli'
        env: Process environment
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    result = subprocess.run(
        [sys.executable, "-m", "cardwise.cli", *args],
        cwd=PROJECT_ROOT,
        env=env,
        capture_output=True,
        text=True,
        timeout=timeout,
    )

    return result.returncode, result.stdout, result.stderr


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self, cli_env):
        """Main help should list the commands."""
        code, stdout, stderr = run_cli_command(["--help"], cli_env)

        assert code == 0, f"Help failed: {stderr}"
        assert "cardwise" in stdout.lower()
        for command in ("due", "stats", "forecast", "study", "review", "reset"):
            assert command in stdout

    @pytest.mark.parametrize("command", ["due", "stats", "forecast", "study", "review", "reset"])
    def test_command_help(self, cli_env, command):
        code, stdout, stderr = run_cli_command([command, "--help"], cli_env)

        assert code == 0, f"{command} help failed: {stderr}"


class TestCLIReadOnly:
    """Commands that only read state."""

    def test_due_runs(self, cli_env, deck_file):
        code, stdout, stderr = run_cli_command(["--deck", str(deck_file), "due"], cli_env)

        assert code == 0, f"Due failed: {stderr}"
        assert "smoke-user" in stdout
        assert "New" in stdout
        assert "3" in stdout

    def test_stats_runs(self, cli_env):
        code, stdout, stderr = run_cli_command(["stats"], cli_env)

        assert code == 0, f"Stats failed: {stderr}"
        assert "Learning Statistics" in stdout
        assert "Retention rate" in stdout

    def test_forecast_runs(self, cli_env):
        code, stdout, stderr = run_cli_command(["forecast", "--days", "3"], cli_env)

        assert code == 0, f"Forecast failed: {stderr}"
        assert "Forecast" in stdout

    def test_missing_deck_fails_cleanly(self, cli_env, tmp_path):
        code, stdout, stderr = run_cli_command(
            ["--deck", str(tmp_path / "nope.json"), "due"], cli_env
        )

        assert code == 1
        assert "Error" in stdout


class TestCLIReview:
    """Commands that write state."""

    def test_review_then_due(self, cli_env, deck_file):
        code, stdout, stderr = run_cli_command(["review", "card-01", "good"], cli_env)

        assert code == 0, f"Review failed: {stderr}"
        assert "card-01" in stdout
        assert "learning" in stdout

        code, stdout, stderr = run_cli_command(["--deck", str(deck_file), "due"], cli_env)
        assert code == 0, f"Due failed: {stderr}"
        assert "2" in stdout

    def test_invalid_rating(self, cli_env):
        code, stdout, stderr = run_cli_command(["review", "card-01", "banana"], cli_env)

        assert code == 1
        assert "Invalid rating" in stdout

    def test_reset_with_yes(self, cli_env):
        run_cli_command(["--user", "alice", "review", "card-01", "easy"], cli_env)

        code, stdout, stderr = run_cli_command(["--user", "alice", "reset", "--yes"], cli_env)

        assert code == 0, f"Reset failed: {stderr}"
        assert "Reset 1 cards for alice" in stdout

    def test_study_with_nothing_due(self, cli_env):
        code, stdout, stderr = run_cli_command(["study"], cli_env)

        assert code == 0, f"Study failed: {stderr}"
        assert "Nothing due" in stdout
