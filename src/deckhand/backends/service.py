"""Init-system service backend driven by ``systemctl`` and ``journalctl``.

The unit file in the managed directory is linked into the systemd unit
directory. ``stop`` only stops the unit: it stays linked and comes back after
a reboot. Only uninstall removes the link.
"""

from __future__ import annotations

import getpass
import logging
from pathlib import Path

from deckhand.backends.artifacts import ArtifactSource, ensure_link, link_target, select_artifact
from deckhand.backends.base import Backend, prompt_environment
from deckhand.backends.templates import render_unit
from deckhand.core.exceptions import NotFoundError, ProjectStateError
from deckhand.core.types import Outcome, RunningState
from deckhand.projects.models import ProjectContext, ProjectType

logger = logging.getLogger(__name__)

UNIT_SUFFIX = ".service"
FALLBACK_UNIT = "default.service"

# `systemctl status` exit code for a unit systemd does not know
UNIT_NOT_FOUND = 4


class ServiceBackend(Backend):
    """Backend for systemd units."""

    project_type = ProjectType.SERVICE

    def unit_file(self, ctx: ProjectContext) -> Path:
        return ctx.managed_file(UNIT_SUFFIX)

    def unit_link(self, ctx: ProjectContext) -> Path:
        return ctx.settings.systemd_unit_dir / f"{ctx.id}{UNIT_SUFFIX}"

    def is_linked(self, ctx: ProjectContext) -> bool:
        """Whether the unit file exists and the systemd link points at it."""
        unit_file = self.unit_file(ctx)
        link = self.unit_link(ctx)
        return unit_file.is_file() and link.exists() and link.resolve() == unit_file.resolve()

    def _require_linked(self, ctx: ProjectContext, action: str) -> None:
        if not self.is_linked(ctx):
            raise NotFoundError(f"No valid unit file found for {ctx.id}, cannot {action}")

    def _systemctl(self, *args: str, check: bool = True, capture: bool = True) -> str:
        return self.runner(["systemctl", *args], check=check, capture=capture).output

    def _generate(self, ctx: ProjectContext) -> str | None:
        interaction = ctx.interaction
        if not interaction.confirm("No unit file found. Generate one?"):
            return None
        start_command = interaction.ask(f"Start command (absolute or relative to {ctx.path})")
        environment = prompt_environment(interaction)
        return render_unit(
            ctx.id,
            ctx.path,
            start_command,
            user=getpass.getuser(),
            environment=environment,
        )

    def _install(self, ctx: ProjectContext, *, ran_setup: bool) -> Outcome:
        try:
            artifact = select_artifact(
                self.unit_file(ctx),
                [
                    (ctx.path / f"{ctx.id}{UNIT_SUFFIX}", ArtifactSource.CONVENTIONAL),
                    (ctx.path / FALLBACK_UNIT, ArtifactSource.FALLBACK),
                ],
                generate=lambda: self._generate(ctx),
            )
        except NotFoundError:
            hint = " (run without --quiet to generate one)" if ctx.interaction.quiet else ""
            raise NotFoundError(f"No unit file could be determined for {ctx.id}{hint}") from None

        link = self.unit_link(ctx)
        if link.exists() and not link.is_symlink():
            raise ProjectStateError(f"A unit file already exists at {link}, cannot install {ctx.id}")
        if link.is_symlink() and link.exists() and link.resolve() != artifact.path.resolve():
            raise ProjectStateError(
                f"{link} already links to {link.resolve()}, cannot install {ctx.id}"
            )
        if ensure_link(link, artifact.path):
            logger.info("Linked %s to %s", link, artifact.path)

        logger.info("Reloading systemd daemon")
        self._systemctl("daemon-reload")
        return Outcome.success(f"Using unit file {artifact.describe()} ({artifact.source})")

    def start(self, ctx: ProjectContext) -> None:
        self._require_linked(ctx, "start")
        self._systemctl("start", ctx.id, capture=False)

    def stop(self, ctx: ProjectContext) -> None:
        self._require_linked(ctx, "stop")
        self._systemctl("stop", ctx.id, capture=False)

    def restart(self, ctx: ProjectContext) -> None:
        self._require_linked(ctx, "restart")
        self._systemctl("restart", ctx.id, capture=False)

    def status(self, ctx: ProjectContext) -> RunningState:
        if not self.is_linked(ctx):
            return RunningState.UNKNOWN
        active = self._systemctl("is-active", ctx.id, check=False).strip()
        return RunningState.RUNNING if active == "active" else RunningState.STOPPED

    def uninstall(self, ctx: ProjectContext) -> Outcome:
        if not self.is_linked(ctx):
            known = self.runner(["systemctl", "status", ctx.id], check=False).returncode != UNIT_NOT_FOUND
            self._systemctl("daemon-reload")
            if known:
                return Outcome.warning(
                    f"No valid unit file found, but systemd knows a unit named {ctx.id}; "
                    "it may belong to something else"
                )
            return Outcome.warning("No valid unit file and no systemd unit found, possibly already uninstalled")

        logger.info("Stopping unit %s", ctx.id)
        self._systemctl("stop", ctx.id, capture=False)
        self.unit_link(ctx).unlink()
        logger.info("Removed unit link %s", self.unit_link(ctx))
        self._systemctl("daemon-reload")
        return Outcome.success()

    def logs(self, ctx: ProjectContext, lines: int | None) -> None:
        self._require_linked(ctx, "show logs")
        tail = ["-f"] if lines is None else ["-n", str(lines)]
        self.runner(["journalctl", "-u", ctx.id, *tail], capture=False)

    def details(self, ctx: ProjectContext) -> dict[str, str]:
        if not self.is_linked(ctx):
            return {"Unit file": "Not found"}
        unit_file = self.unit_file(ctx)
        target = link_target(unit_file)
        return {
            "Unit file": f"{unit_file} -> {target}" if target else str(unit_file),
            "Enabled link": str(self.unit_link(ctx)),
        }

    def native_status(self, ctx: ProjectContext, *, batch: bool) -> Outcome | None:
        if batch or not self.is_linked(ctx):
            return None
        self.runner(["systemctl", "status", ctx.id, "--no-pager", "-n", "0"], capture=False, check=False)
        return None
