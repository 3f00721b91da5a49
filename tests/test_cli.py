"""Tests for CLI module."""

import pytest
import yaml
from click.testing import CliRunner

from shellsense import __version__
from shellsense.cli import main

SESSION_UUID = "0f8fad5b-d9cb-469f-a165-70867728950e"


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def write_config(tmp_path):
    """Write a YAML config file and return its path."""

    def _write(data):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump(data))
        return path

    return _write


SESSION_TRIGGER = {
    "id": "sid",
    "name": "Session ID",
    "pattern": "Session ID: ([0-9a-f-]{36})",
    "variables": [{"name": "sid", "group": 1}],
    "actions": [{"type": "notify", "message": "Captured %sid"}],
}


class TestCLIHelp:
    """Test CLI help output."""

    def test_cli_help(self, runner):
        """shellsense --help lists commands."""
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "check" in result.output
        assert "replay" in result.output
        assert "shell-init" in result.output


class TestVersionCommand:
    """Test version command."""

    def test_version(self, runner, tmp_path):
        result = runner.invoke(main, ["-c", str(tmp_path / "none.yaml"), "version"])

        assert result.exit_code == 0
        assert __version__ in result.output


class TestCheckCommand:
    """Configuration validation."""

    def test_valid_config(self, runner, write_config):
        path = write_config({"log_level": "ERROR", "triggers": {"items": [SESSION_TRIGGER]}})

        result = runner.invoke(main, ["-c", str(path), "check"])

        assert result.exit_code == 0
        assert "Session ID" in result.output
        assert "Configuration ok" in result.output

    def test_invalid_trigger_pattern(self, runner, write_config):
        path = write_config(
            {
                "log_level": "ERROR",
                "triggers": {"items": [{"id": "bad", "pattern": "(unclosed"}]},
            }
        )

        result = runner.invoke(main, ["-c", str(path), "check"])

        assert result.exit_code == 1
        assert "bad" in result.output

    def test_invalid_prompt_pattern(self, runner, write_config):
        path = write_config({"log_level": "ERROR", "prompt_patterns": ["\\u@\\h\\p"]})

        result = runner.invoke(main, ["-c", str(path), "check"])

        assert result.exit_code == 1

    def test_invalid_yaml_file(self, runner, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("log_level: ERROR\ntriggers: [unclosed\n")

        result = runner.invoke(main, ["-c", str(path), "check"])

        assert result.exit_code == 1
        assert "invalid YAML" in result.output

    def test_skipped_entry_reported(self, runner, write_config):
        path = write_config(
            {
                "log_level": "ERROR",
                "triggers": {"items": [SESSION_TRIGGER, {"pattern": "x", "match_mode": "fuzzy"}]},
            }
        )

        result = runner.invoke(main, ["-c", str(path), "check"])

        assert result.exit_code == 1
        assert "fuzzy" in result.output

    def test_missing_file_checks_defaults(self, runner, tmp_path):
        result = runner.invoke(main, ["-c", str(tmp_path / "none.yaml"), "check"])

        assert result.exit_code == 0
        assert "checking defaults" in result.output

    def test_variable_trigger_lists_names(self, runner, write_config):
        path = write_config(
            {
                "log_level": "ERROR",
                "triggers": {
                    "items": [
                        {"id": "auto", "name": "Auto", "pattern": "a || b", "match_mode": "variable"}
                    ]
                },
            }
        )

        result = runner.invoke(main, ["-c", str(path), "check"])

        assert result.exit_code == 0
        assert "uses a, b" in result.output


class TestReplayCommand:
    """Replaying recorded output."""

    def test_replay_reports_triggers_and_state(self, runner, write_config, tmp_path):
        path = write_config({"log_level": "ERROR", "triggers": {"items": [SESSION_TRIGGER]}})
        log = tmp_path / "session.log"
        log.write_bytes(
            b"\x1b]0;build\x07"
            b"\x1b]7;file:///srv/app\x07"
            + f"\x1b[1mSession ID: {SESSION_UUID}\x1b[0m\r\n".encode()
        )

        result = runner.invoke(main, ["-c", str(path), "replay", str(log)])

        assert result.exit_code == 0
        assert "[event] TitleChanged(title='build')" in result.output
        assert "[fired] Session ID" in result.output
        assert f"[notify] build: Captured {SESSION_UUID}" in result.output
        assert "Directory: /srv/app" in result.output
        assert f"sid = {SESSION_UUID}" in result.output

    def test_replay_small_chunks(self, runner, write_config, tmp_path):
        path = write_config({"log_level": "ERROR", "triggers": {"items": [SESSION_TRIGGER]}})
        log = tmp_path / "session.log"
        log.write_bytes(f"Session ID: {SESSION_UUID}\n".encode())

        result = runner.invoke(
            main, ["-c", str(path), "replay", "--chunk-size", "7", str(log)]
        )

        assert result.exit_code == 0
        assert "[fired] Session ID" in result.output

    def test_replay_missing_file(self, runner, tmp_path):
        result = runner.invoke(main, ["replay", str(tmp_path / "missing.log")])

        assert result.exit_code != 0


class TestShellInitCommand:
    """Shell integration snippet output."""

    def test_prints_snippet(self, runner, tmp_path):
        result = runner.invoke(main, ["-c", str(tmp_path / "none.yaml"), "shell-init"])

        assert result.exit_code == 0
        assert result.output.startswith("stty -echo")
        assert "133;A" in result.output

    def test_without_osc133(self, runner, tmp_path):
        result = runner.invoke(
            main, ["-c", str(tmp_path / "none.yaml"), "shell-init", "--no-osc133"]
        )

        assert result.exit_code == 0
        assert "133;" not in result.output

    def test_nothing_enabled(self, runner, tmp_path):
        result = runner.invoke(
            main,
            [
                "-c",
                str(tmp_path / "none.yaml"),
                "shell-init",
                "--no-title",
                "--no-osc133",
                "--no-cwd",
            ],
        )

        assert result.exit_code == 1
