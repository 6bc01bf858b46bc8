"""Tests for config commands (show and verify).

Integration tests using CliRunner for:
- deckhand config show
- deckhand config verify
"""

from pathlib import Path

from typer.testing import CliRunner

from deckhand.cli import app

runner = CliRunner()


# =============================================================================
# Test: config show command
# =============================================================================


class TestConfigShowCommand:
    """Tests for 'deckhand config show' command."""

    def test_defaults(self, tmp_path: Path) -> None:
        """Without a config file the defaults are shown."""
        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "status_check_retries" in result.output
        assert "github.com" in result.output

    def test_reads_home_config(self, tmp_path: Path) -> None:
        home = tmp_path / "home"
        home.mkdir()
        (home / "deckhand.yaml").write_text("default_container_image: python:3.12-slim\n")

        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "python:3.12-slim" in result.output

    def test_invalid_config_exits_2(self, tmp_path: Path) -> None:
        home = tmp_path / "home"
        home.mkdir()
        (home / "deckhand.yaml").write_text("unknown_setting: 1\n")

        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 2
        assert "Error" in result.output

    def test_explicit_config_option(self, tmp_path: Path) -> None:
        """--config replaces the home config file."""
        config = tmp_path / "custom.yaml"
        config.write_text("log_lines: 42\n")

        result = runner.invoke(app, ["--config", str(config), "config", "show"])

        assert result.exit_code == 0
        assert "42" in result.output


# =============================================================================
# Test: config verify command
# =============================================================================


class TestConfigVerifyCommand:
    """Tests for 'deckhand config verify' command."""

    def test_valid_config(self, tmp_path: Path) -> None:
        """Valid config exits 0 with OK."""
        config = tmp_path / "deckhand.yaml"
        config.write_text("status_check_retries: 5\ntrusted_hosts:\n  - github.com\n  - gitlab.com\n")

        result = runner.invoke(app, ["config", "verify", str(config)])

        assert result.exit_code == 0
        assert "[OK]" in result.output

    def test_empty_config_is_valid(self, tmp_path: Path) -> None:
        """Every key is optional."""
        config = tmp_path / "deckhand.yaml"
        config.write_text("")

        result = runner.invoke(app, ["config", "verify", str(config)])

        assert result.exit_code == 0

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["config", "verify", str(tmp_path / "nope.yaml")])

        assert result.exit_code == 2
        assert "not found" in result.output

    def test_default_location(self, tmp_path: Path) -> None:
        """Without an argument the home config file is checked."""
        result = runner.invoke(app, ["config", "verify"])

        assert result.exit_code == 2
        assert "not found" in result.output

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        config = tmp_path / "deckhand.yaml"
        config.write_text("trusted_hosts: [\n")

        result = runner.invoke(app, ["config", "verify", str(config)])

        assert result.exit_code == 2
        assert "[ERR]" in result.output

    def test_invalid_value(self, tmp_path: Path) -> None:
        config = tmp_path / "deckhand.yaml"
        config.write_text("status_check_interval: 0\n")

        result = runner.invoke(app, ["config", "verify", str(config)])

        assert result.exit_code == 2
        assert "status_check_interval" in result.output

    def test_verify_ignores_broken_home_config(self, tmp_path: Path) -> None:
        """A broken default config does not stop checking another file."""
        home = tmp_path / "home"
        home.mkdir()
        (home / "deckhand.yaml").write_text("log_lines: -3\n")
        config = tmp_path / "fixed.yaml"
        config.write_text("log_lines: 3\n")

        result = runner.invoke(app, ["config", "verify", str(config)])

        assert result.exit_code == 0
