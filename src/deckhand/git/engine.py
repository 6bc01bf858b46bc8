"""Git update engine.

Thin wrapper around the git CLI used for project working copies and for the
manager's own install directory. All calls go through an injected command
runner; any URL carrying a credential is masked in logs and errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from deckhand.core.exceptions import ExternalToolError, GitError
from deckhand.core.process import CommandResult, CommandRunner, run_command
from deckhand.git.credentials import RepoURL

logger = logging.getLogger(__name__)


class UpstreamState(StrEnum):
    UP_TO_DATE = "up_to_date"
    BEHIND = "behind"
    NO_UPSTREAM = "no_upstream"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class UpstreamComparison:
    """Local HEAD compared with the remote's current commit.

    Attributes:
        state: Comparison result.
        behind: Commits missing locally, None when the remote commit has not
            been fetched yet or the state is not BEHIND.
        detail: Human-readable explanation for NO_UPSTREAM and ERROR.

    """

    state: UpstreamState
    behind: int | None = None
    detail: str = ""


class PullState(StrEnum):
    UP_TO_DATE = "up_to_date"
    UPDATED = "updated"


@dataclass(frozen=True, slots=True)
class PullResult:
    """Outcome of a successful pull. A failed pull raises GitError."""

    state: PullState
    old: str
    new: str
    behind: int = 0

    @property
    def updated(self) -> bool:
        return self.state is PullState.UPDATED


class GitEngine:
    """Clone, compare and pull git working copies."""

    def __init__(self, runner: CommandRunner = run_command) -> None:
        self.runner = runner

    def _git(
        self,
        gitpath: Path,
        *args: str,
        check: bool = True,
        capture: bool = True,
        display: str | None = None,
    ) -> CommandResult:
        command = ["git", "-C", str(gitpath), *args]
        try:
            return self.runner(command, check=check, capture=capture, display=display)
        except ExternalToolError as e:
            if isinstance(e, GitError):
                raise
            raise GitError(str(e), command=e.command, output=e.output, returncode=e.returncode) from e

    def is_working_copy(self, path: Path) -> bool:
        """Whether ``path`` is the top level of a git working copy."""
        if not path.is_dir():
            return False
        return self.toplevel(path) == path.resolve()

    def toplevel(self, path: Path) -> Path | None:
        """Top level of the working copy containing ``path``, None if outside one."""
        result = self._git(path, "rev-parse", "--show-toplevel", check=False)
        if not result.ok or not result.output.strip():
            return None
        return Path(result.output.strip().splitlines()[-1]).resolve()

    @staticmethod
    def needs_clone(gitpath: Path) -> bool:
        """Whether ``gitpath`` is absent or an empty directory."""
        return not gitpath.exists() or (gitpath.is_dir() and not any(gitpath.iterdir()))

    def head(self, gitpath: Path, *, short: bool = True) -> str:
        args = ["rev-parse", "--short", "HEAD"] if short else ["rev-parse", "HEAD"]
        return self._git(gitpath, *args).output.strip()

    def upstream_ref(self, gitpath: Path) -> str | None:
        """Tracking ref of the current branch (``origin/main``), None if unset."""
        result = self._git(
            gitpath, "rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}", check=False
        )
        if not result.ok or not result.output.strip():
            return None
        return result.output.strip()

    def clone_or_verify(self, gitpath: Path, url: RepoURL) -> bool:
        """Clone into ``gitpath`` when absent or empty, else verify it.

        Returns:
            True if a clone was made.

        Raises:
            GitError: If cloning fails or ``gitpath`` holds something that is
                not a working copy.

        """
        if not self.needs_clone(gitpath):
            if not self.is_working_copy(gitpath):
                raise GitError(f"Directory {gitpath} exists but is not a git repository")
            return False
        if gitpath.exists() and not gitpath.is_dir():
            raise GitError(f"{gitpath} exists but is not a directory")

        logger.info("Cloning %s into %s", url.masked, gitpath)
        gitpath.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.runner(
                ["git", "clone", url.authenticated, str(gitpath)],
                capture=False,
                display=f"git clone {url.masked} {gitpath}",
            )
        except ExternalToolError as e:
            raise GitError(
                "Clone failed, check credentials and repository access",
                command=e.command,
                returncode=e.returncode,
            ) from e
        return True

    def compare_upstream(self, gitpath: Path) -> UpstreamComparison:
        """Compare HEAD with the remote's current commit without fetching.

        The remote is queried with ``ls-remote``; nothing is merged.
        """
        ref = self.upstream_ref(gitpath)
        if ref is None:
            return UpstreamComparison(UpstreamState.NO_UPSTREAM, detail="No upstream configured")
        remote, _, branch = ref.partition("/")

        result = self._git(gitpath, "ls-remote", "--refs", "-q", remote, f"refs/heads/{branch}", check=False)
        if not result.ok:
            return UpstreamComparison(UpstreamState.ERROR, detail="Failed to get upstream commit")
        words = result.output.split()
        if not words:
            return UpstreamComparison(UpstreamState.ERROR, detail="No upstream commit found")
        remote_commit = words[0]

        if remote_commit == self.head(gitpath, short=False):
            return UpstreamComparison(UpstreamState.UP_TO_DATE, behind=0)

        counted = self._git(gitpath, "rev-list", "--count", f"HEAD..{remote_commit}", check=False)
        behind = int(counted.output.strip()) if counted.ok and counted.output.strip().isdigit() else None
        if behind == 0:
            return UpstreamComparison(UpstreamState.UP_TO_DATE, behind=0, detail="Local commits ahead of upstream")
        return UpstreamComparison(UpstreamState.BEHIND, behind=behind, detail="Update available")

    def pull(self, gitpath: Path, url: RepoURL | None = None) -> PullResult:
        """Fetch, then pull only when commits are missing locally.

        Args:
            gitpath: Working copy to update.
            url: Repository URL (possibly credentialed); None uses the
                configured remote as is.

        Returns:
            PullResult. UP_TO_DATE leaves the working tree untouched.

        Raises:
            GitError: If there is no upstream or any git step fails.

        """
        ref = self.upstream_ref(gitpath)
        if ref is None:
            raise GitError(f"No upstream configured for {gitpath}")
        remote, _, branch = ref.partition("/")

        logger.info("Fetching updates for %s", gitpath)
        if url is None:
            self._git(gitpath, "fetch", "--quiet", remote)
        else:
            refspec = f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}"
            self._git(
                gitpath,
                "fetch",
                "--quiet",
                url.authenticated,
                refspec,
                display=f"git -C {gitpath} fetch --quiet {url.masked} {refspec}",
            )

        old = self.head(gitpath)
        count = self._git(gitpath, "rev-list", "--count", f"HEAD..{ref}").output.strip()
        if not count.isdigit():
            raise GitError(f"Invalid commit count returned by git ({count})")
        behind = int(count)
        if behind == 0:
            return PullResult(PullState.UP_TO_DATE, old=old, new=old)

        logger.info("Pulling %d new commit(s) into %s", behind, gitpath)
        if url is None:
            self._git(gitpath, "pull", remote, branch)
        else:
            self._git(
                gitpath,
                "pull",
                url.authenticated,
                branch,
                display=f"git -C {gitpath} pull {url.masked} {branch}",
            )
        return PullResult(PullState.UPDATED, old=old, new=self.head(gitpath), behind=behind)
