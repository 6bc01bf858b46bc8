"""Backend driver interface.

A backend turns lifecycle operations into runtime commands for one project
type. Every call receives an explicit ProjectContext. Triggers (start, stop,
restart) only fire the command; confirming the resulting state is the
orchestrator's job and only happens for backends with ``confirms_status``.
"""

from __future__ import annotations

import logging
import os
import stat
from abc import ABC, abstractmethod
from typing import ClassVar

from deckhand.core.exceptions import ValidationError
from deckhand.core.interaction import Interaction
from deckhand.core.process import CommandRunner, run_command
from deckhand.core.types import Outcome, RunningState
from deckhand.projects.models import ProjectContext, ProjectType

logger = logging.getLogger(__name__)

SETUP_HOOK = "setup.sh"
UPDATE_HOOK = "update.sh"


def prompt_environment(interaction: Interaction) -> list[str]:
    """Collect ``KEY=value`` lines until a blank answer."""
    environment: list[str] = []
    while True:
        variable = interaction.ask("New environment variable as KEY=value (blank to finish)")
        if not variable:
            return environment
        environment.append(variable)


class Backend(ABC):
    """Common surface of the container, service and scripts backends.

    Attributes:
        project_type: Project type this backend serves.
        confirms_status: Whether triggers can be confirmed by polling status.
        runner: Command runner used for every external call.

    """

    project_type: ClassVar[ProjectType]
    confirms_status: ClassVar[bool] = True

    def __init__(self, runner: CommandRunner = run_command) -> None:
        self.runner = runner

    def install(self, ctx: ProjectContext) -> Outcome:
        """Run the project's setup hook, then the backend-specific install.

        Installing twice without external changes converges to the same
        artifact state.
        """
        ran_setup = self.run_hook(ctx, SETUP_HOOK)
        return self._install(ctx, ran_setup=ran_setup)

    @abstractmethod
    def _install(self, ctx: ProjectContext, *, ran_setup: bool) -> Outcome: ...

    @abstractmethod
    def start(self, ctx: ProjectContext) -> None: ...

    @abstractmethod
    def stop(self, ctx: ProjectContext) -> None: ...

    @abstractmethod
    def restart(self, ctx: ProjectContext) -> None: ...

    @abstractmethod
    def status(self, ctx: ProjectContext) -> RunningState: ...

    @abstractmethod
    def uninstall(self, ctx: ProjectContext) -> Outcome: ...

    @abstractmethod
    def logs(self, ctx: ProjectContext, lines: int | None) -> None:
        """Show native logs: follow when ``lines`` is None, else tail N lines."""

    def details(self, ctx: ProjectContext) -> dict[str, str]:
        """Artifact facts for the status report."""
        return {}

    def native_status(self, ctx: ProjectContext, *, batch: bool) -> Outcome | None:
        """Print the runtime's own status output for the status report."""
        return None

    def run_hook(self, ctx: ProjectContext, name: str) -> bool:
        """Run a project-supplied script from the project path if present.

        Hooks run in the foreground without arguments and are judged by their
        exit code. A hook without the executable bit is offered a fix.

        Returns:
            True if the hook existed and succeeded, False if it is absent.

        Raises:
            ValidationError: If the hook is not executable and was not fixed.
            ExternalToolError: If the hook exits non-zero.

        """
        hook = ctx.path / name
        if not hook.is_file():
            return False

        if not os.access(hook, os.X_OK):
            if not ctx.interaction.confirm(f"File '{hook}' is not executable. Make it executable?"):
                raise ValidationError(f"Script {hook} is not executable")
            mode = hook.stat().st_mode
            hook.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

        logger.info("Running %s", hook)
        self.runner([str(hook)], cwd=ctx.path, capture=False)
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
