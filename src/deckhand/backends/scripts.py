"""Script bundle backend.

Every operation maps to an executable hook in the project path. There is no
native running state, so status is always unknown and triggers are never
confirmed by polling.
"""

from __future__ import annotations

import logging

from deckhand.backends.base import SETUP_HOOK, Backend
from deckhand.core.exceptions import NotFoundError
from deckhand.core.types import Outcome, RunningState
from deckhand.projects.models import ProjectContext, ProjectType

logger = logging.getLogger(__name__)

START_HOOK = "start.sh"
STOP_HOOK = "stop.sh"
RESTART_HOOK = "restart.sh"
STATUS_HOOK = "status.sh"
LOGS_HOOK = "logs.sh"
UNINSTALL_HOOK = "uninstall.sh"

HOOKS = (SETUP_HOOK, START_HOOK, STOP_HOOK, RESTART_HOOK, STATUS_HOOK, LOGS_HOOK, UNINSTALL_HOOK)


class ScriptsBackend(Backend):
    """Backend running project-supplied shell scripts."""

    project_type = ProjectType.SCRIPTS
    confirms_status = False

    def _require_hook(self, ctx: ProjectContext, name: str) -> None:
        if not self.run_hook(ctx, name):
            raise NotFoundError(f"No {name} script found in {ctx.path}")

    def _install(self, ctx: ProjectContext, *, ran_setup: bool) -> Outcome:
        if not ran_setup:
            return Outcome.warning(f"No {SETUP_HOOK} script found in {ctx.path}, nothing to install")
        return Outcome.success()

    def start(self, ctx: ProjectContext) -> None:
        self._require_hook(ctx, START_HOOK)

    def stop(self, ctx: ProjectContext) -> None:
        self._require_hook(ctx, STOP_HOOK)

    def restart(self, ctx: ProjectContext) -> None:
        if self.run_hook(ctx, RESTART_HOOK):
            return
        if not ((ctx.path / STOP_HOOK).is_file() and (ctx.path / START_HOOK).is_file()):
            raise NotFoundError(
                f"No {RESTART_HOOK} or {STOP_HOOK} + {START_HOOK} scripts found in {ctx.path}"
            )
        self._require_hook(ctx, STOP_HOOK)
        self._require_hook(ctx, START_HOOK)

    def status(self, ctx: ProjectContext) -> RunningState:
        return RunningState.UNKNOWN

    def uninstall(self, ctx: ProjectContext) -> Outcome:
        if not self.run_hook(ctx, UNINSTALL_HOOK):
            return Outcome.warning(f"No {UNINSTALL_HOOK} script found in {ctx.path}, nothing to uninstall")
        return Outcome.success()

    def logs(self, ctx: ProjectContext, lines: int | None) -> None:
        self._require_hook(ctx, LOGS_HOOK)

    def details(self, ctx: ProjectContext) -> dict[str, str]:
        found = [hook for hook in HOOKS if (ctx.path / hook).is_file()]
        return {"Scripts": ", ".join(found) if found else "None found"}

    def native_status(self, ctx: ProjectContext, *, batch: bool) -> Outcome | None:
        if not self.run_hook(ctx, STATUS_HOOK):
            return Outcome.warning(f"No {STATUS_HOOK} script found in {ctx.path}")
        return None
