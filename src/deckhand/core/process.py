"""External command execution.

All calls to docker, systemctl, journalctl, git and project hook scripts go
through :func:`run_command`. Commands are blocking. Captured commands return
their combined output; foreground commands (builds, pulls, log streaming,
hook scripts) inherit the terminal and return an empty output.

Drivers take the runner as a constructor argument (``CommandRunner``) so tests
can substitute a recording fake.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from deckhand.core.exceptions import ExternalToolError

logger = logging.getLogger(__name__)

# Exit code reported when the executable does not exist (shell convention)
EXIT_COMMAND_NOT_FOUND = 127


@dataclass(slots=True)
class CommandResult:
    """Result from running an external command."""

    command: str
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Callable signature shared by :func:`run_command` and test fakes."""

    def __call__(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        capture: bool = True,
        check: bool = True,
        display: str | None = None,
    ) -> CommandResult: ...


def run_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    capture: bool = True,
    check: bool = True,
    display: str | None = None,
) -> CommandResult:
    """Run an external command and wait for it.

    Args:
        args: Executable and arguments. Never passed through a shell.
        cwd: Working directory for the command.
        capture: Capture stdout/stderr (True) or run in the foreground.
        check: Raise on a non-zero exit code.
        display: Command text used in logs and errors instead of the real
            arguments (used when the arguments carry a credential).

    Returns:
        CommandResult with the exit code and the captured output.

    Raises:
        ExternalToolError: If the executable is missing or exits non-zero while
            ``check`` is set.

    """
    command_text = display or " ".join(args)
    logger.debug("Running: %s", command_text)

    try:
        completed = subprocess.run(
            list(args),
            cwd=cwd,
            capture_output=capture,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise ExternalToolError(
            f"{args[0]} is not installed or not in PATH",
            command=command_text,
            returncode=EXIT_COMMAND_NOT_FOUND,
        ) from e
    except PermissionError as e:
        raise ExternalToolError(
            f"{args[0]} is not executable",
            command=command_text,
            returncode=EXIT_COMMAND_NOT_FOUND,
        ) from e

    output = ((completed.stdout or "") + (completed.stderr or "")) if capture else ""
    result = CommandResult(command=command_text, returncode=completed.returncode, output=output.strip())

    if check and not result.ok:
        detail = f": {result.output}" if result.output else ""
        raise ExternalToolError(
            f"{command_text} failed with exit code {result.returncode}{detail}",
            command=command_text,
            output=result.output,
            returncode=result.returncode,
        )
    return result
