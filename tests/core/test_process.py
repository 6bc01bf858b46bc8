"""Tests for external command execution."""

import sys
from pathlib import Path

import pytest

from deckhand.core.exceptions import ExternalToolError
from deckhand.core.process import EXIT_COMMAND_NOT_FOUND, CommandResult, run_command


class TestCommandResult:
    """Test CommandResult."""

    def test_ok_for_zero_exit(self) -> None:
        """Exit code 0 is ok."""
        assert CommandResult("true", 0).ok

    def test_not_ok_for_non_zero_exit(self) -> None:
        """Any other exit code is not ok."""
        assert not CommandResult("false", 3).ok


class TestRunCommand:
    """Test run_command against real processes."""

    def test_captures_combined_output(self) -> None:
        """stdout and stderr are both captured."""
        result = run_command(
            [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"]
        )
        assert result.ok
        assert "out" in result.output
        assert "err" in result.output

    def test_non_zero_exit_raises_with_output(self) -> None:
        """check=True turns a failure into ExternalToolError."""
        with pytest.raises(ExternalToolError) as exc_info:
            run_command([sys.executable, "-c", "import sys; print('boom'); sys.exit(3)"])

        assert exc_info.value.returncode == 3
        assert exc_info.value.output == "boom"
        assert "boom" in str(exc_info.value)

    def test_non_zero_exit_without_check(self) -> None:
        """check=False returns the failed result."""
        result = run_command([sys.executable, "-c", "raise SystemExit(4)"], check=False)
        assert result.returncode == 4
        assert not result.ok

    def test_missing_executable(self) -> None:
        """A missing executable reports exit code 127."""
        with pytest.raises(ExternalToolError, match="not installed") as exc_info:
            run_command(["deckhand-no-such-tool-xyz"])
        assert exc_info.value.returncode == EXIT_COMMAND_NOT_FOUND

    def test_runs_in_cwd(self, tmp_path: Path) -> None:
        """The working directory is honoured."""
        result = run_command([sys.executable, "-c", "import os; print(os.getcwd())"], cwd=tmp_path)
        assert Path(result.output).resolve() == tmp_path.resolve()

    def test_display_replaces_command_in_errors(self) -> None:
        """The display text stands in for arguments carrying secrets."""
        with pytest.raises(ExternalToolError) as exc_info:
            run_command(
                [sys.executable, "-c", "raise SystemExit(1)", "https://secret@github.com/x"],
                display="git clone https://***@github.com/x",
            )
        assert "secret" not in str(exc_info.value)
        assert exc_info.value.command == "git clone https://***@github.com/x"

    def test_foreground_returns_empty_output(self) -> None:
        """capture=False inherits stdio and returns no output."""
        result = run_command([sys.executable, "-c", "pass"], capture=False)
        assert result.output == ""
