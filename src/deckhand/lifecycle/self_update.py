"""Self-update of the deckhand installation.

Pulling new code into the install directory does not change the modules
already loaded by the running process. A successful update therefore ends
in a RestartRequested value; the CLI replaces the process image with a
fresh interpreter before any project is touched by the old code. The relaunched
process carries RELAUNCH_FLAG, which turns a second self-update into a
version report so the relaunch cannot loop.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

from deckhand import __version__
from deckhand.core.config import ManagerConfig
from deckhand.core.exceptions import DeckhandError, SelfUpdateError
from deckhand.core.types import Outcome
from deckhand.git import GitEngine, RepoURL

logger = logging.getLogger(__name__)

RELAUNCH_FLAG = "--internal-relaunch"


@dataclass(frozen=True)
class RestartRequested:
    """The install directory moved to a new commit; relaunch with ``argv``."""

    argv: list[str]
    old: str
    new: str


class SelfUpdater:
    """Pulls the deckhand install directory.

    Attributes:
        settings: Manager configuration (install directory, update URL).
        git: Git engine used for the pull.
        relaunched: True inside a process started by :func:`relaunch`.

    """

    def __init__(self, settings: ManagerConfig, git: GitEngine, *, relaunched: bool = False) -> None:
        self.settings = settings
        self.git = git
        self.relaunched = relaunched

    def install_dir(self) -> Path:
        """Working copy deckhand runs from.

        Raises:
            SelfUpdateError: If deckhand does not run from a git working copy.

        """
        if self.settings.install_dir is not None:
            return self.settings.install_dir
        toplevel = self.git.toplevel(Path(__file__).resolve().parent)
        if toplevel is None:
            raise SelfUpdateError("deckhand is not installed from a git working copy, cannot self-update")
        return toplevel

    def run(self, argv: Sequence[str]) -> Outcome | RestartRequested:
        """Update the installation.

        Args:
            argv: Original command line arguments, without the program name.

        Returns:
            An Outcome when nothing changed (or inside a relaunch), else
            RestartRequested.

        Raises:
            SelfUpdateError: If the update failed. Nothing is relaunched.

        """
        if self.relaunched:
            return Outcome.success(f"deckhand updated to {__version__}")

        install_dir = self.install_dir()
        url = RepoURL.plain(self.settings.self_update_repo_url) if self.settings.self_update_repo_url else None
        try:
            result = self.git.pull(install_dir, url)
        except DeckhandError as e:
            raise SelfUpdateError(f"Failed to update deckhand: {e}") from e

        if not result.updated:
            return Outcome.success(f"deckhand is already up to date ({__version__})")
        logger.info("Self-update complete from %s to %s", result.old, result.new)
        return RestartRequested(argv=list(argv), old=result.old, new=result.new)


def relaunch_command(argv: Sequence[str]) -> list[str]:
    return [sys.executable, "-m", "deckhand", RELAUNCH_FLAG, *argv]


def relaunch(argv: Sequence[str]) -> NoReturn:
    """Replace the current process with a fresh deckhand.

    The new process inherits the PID, so its exit code is the exit code of
    the original invocation.
    """
    command = relaunch_command(argv)
    logger.info("Restarting deckhand")
    logging.shutdown()
    sys.stdout.flush()
    sys.stderr.flush()
    os.execv(sys.executable, command)
