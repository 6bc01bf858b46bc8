"""Project lifecycle orchestration.

The only persisted state is a project's ``enabled`` flag. Whether it runs is
observed from its backend on every call, giving the derived states Disabled,
Enabled-Stopped, Enabled-Running and Enabled-Unknown.

Transitions:

- enable: install; on failure force ``enabled=false`` and re-raise. A project
  that was already enabled and running is restarted after the re-install.
- disable: uninstall, then always set ``enabled=false``, even when uninstall
  failed, so the project can be enabled again.
- start/restart: a no-op warning unless enabled. stop works on disabled
  projects too, so a leftover instance can still be stopped.
- update: project update hook, or repository pull plus per-image pulls; then
  re-install an enabled project and restart it if it was running before.

Every operation returns an Outcome for reportable results and raises a
DeckhandError for fatal ones.
"""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from deckhand.backends import Backend, ContainerBackend, DanglingImage, get_backend
from deckhand.backends.artifacts import backup_paths, ensure_link
from deckhand.backends.base import UPDATE_HOOK
from deckhand.backends.container import DESCRIPTOR_SUFFIX
from deckhand.backends.service import UNIT_SUFFIX
from deckhand.core.config import ManagerConfig
from deckhand.core.exceptions import (
    AmbiguousSelectionError,
    DeckhandError,
    NotFoundError,
    ProjectStateError,
    ValidationError,
)
from deckhand.core.interaction import Interaction
from deckhand.core.masking import mask_url
from deckhand.core.process import CommandRunner, run_command
from deckhand.core.retry import ConfirmResult, confirm_state
from deckhand.core.types import Outcome, OutcomeStatus, RunningState
from deckhand.git import CredentialStore, GitEngine, RepoURL, UpstreamComparison, resolve_repo_url
from deckhand.projects.models import AuthMode, ProjectContext, create_record
from deckhand.projects.store import ProjectStore

logger = logging.getLogger(__name__)

# Managed files removed together with a project record
MANAGED_SUFFIXES = (DESCRIPTOR_SUFFIX, UNIT_SUFFIX)

_SEVERITY = {OutcomeStatus.SUCCESS: 0, OutcomeStatus.WARNING: 1, OutcomeStatus.FAILED: 2}


def combine(*outcomes: Outcome | None) -> Outcome:
    """Merge outcomes: the worst status wins, messages are joined in order."""
    present = [outcome for outcome in outcomes if outcome is not None]
    if not present:
        return Outcome.success()
    status = max((outcome.status for outcome in present), key=_SEVERITY.__getitem__)
    message = "; ".join(outcome.message for outcome in present if outcome.message)
    return Outcome(status, message)


def pick_service(services: list[str], interaction: Interaction) -> str:
    """Choose a service by exact name or unique prefix.

    Under quiet mode the first service is used.

    Raises:
        NotFoundError: If no service matches the answer.
        AmbiguousSelectionError: If the answer prefixes several services.

    """
    if len(services) == 1:
        return services[0]
    if interaction.quiet:
        logger.info("Multiple services found, using the first one: %s", services[0])
        return services[0]

    answer = interaction.ask(f"Services: {', '.join(services)}. Enter (start of) service name")
    if answer in services:
        return answer
    matches = [service for service in services if service.startswith(answer)]
    if not matches:
        raise NotFoundError(f"No services match '{answer}*'")
    if len(matches) > 1:
        raise AmbiguousSelectionError(
            f"Service name '{answer}' is ambiguous: {', '.join(matches)}",
            pattern=answer,
            candidates=matches,
        )
    return matches[0]


@dataclass(frozen=True)
class ListEntry:
    """One line of the project list."""

    id: str
    type: str
    enabled: bool
    path: Path
    state: RunningState | None = None


@dataclass(frozen=True)
class StatusReport:
    """Everything the status command shows for one project.

    Attributes:
        state: Observed running state, None for an unsupported type.
        details: Backend artifact facts (artifact path, link target).
        git: Upstream comparison, None when no working copy is set up.

    """

    id: str
    type: str
    enabled: bool
    path: Path
    repository: str
    sub_path: str | None
    authentication: str
    state: RunningState | None = None
    details: dict[str, str] = field(default_factory=dict)
    git: UpstreamComparison | None = None

    @property
    def supported(self) -> bool:
        return self.state is not None


class Orchestrator:
    """Runs lifecycle operations for one invocation.

    Attributes:
        settings: Manager configuration.
        interaction: Prompt policy.
        store: Project record store.
        git: Git engine for project working copies.
        credentials: Global credential access.
        max_attempts: Status re-checks after a trigger (0 disables polling).
        dangling: Dangling images collected by updates, per project id.

    """

    def __init__(
        self,
        settings: ManagerConfig,
        interaction: Interaction,
        *,
        store: ProjectStore | None = None,
        runner: CommandRunner = run_command,
        git: GitEngine | None = None,
        credentials: CredentialStore | None = None,
        status_checks: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.interaction = interaction
        self.runner = runner
        self.store = store or ProjectStore(settings.projects_dir)
        self.git = git or GitEngine(runner)
        self.credentials = credentials or CredentialStore(settings.credential_file, interaction)
        self.max_attempts = settings.status_check_retries if status_checks else 0
        self.sleep = sleep
        self.dangling: list[tuple[str, DanglingImage]] = []

    # -- contexts and records -------------------------------------------------

    def context(self, project_id: str) -> ProjectContext:
        """Load a project and bind its backend."""
        record = self.store.load(project_id)
        return ProjectContext(
            record=record,
            settings=self.settings,
            interaction=self.interaction,
            backend=get_backend(record.project_type, self.runner),
        )

    def _backend(self, ctx: ProjectContext, action: str) -> Backend:
        if ctx.backend is None:
            raise ProjectStateError(f"Unknown or unsupported type '{ctx.record.type}', cannot {action} {ctx.id}")
        return ctx.backend

    def _save(self, ctx: ProjectContext, **changes: object) -> ProjectContext:
        record = ctx.record.model_copy(update=changes)
        self.store.save(record)
        return ctx.with_record(record)

    def repo_url(self, ctx: ProjectContext) -> RepoURL:
        return resolve_repo_url(ctx.record, self.credentials, self.settings.trusted_hosts)

    # -- add / remove / list --------------------------------------------------

    def add(
        self,
        project_id: str,
        *,
        project_type: str,
        path: Path,
        repo_url: str = "",
        sub_path: str | None = None,
        auth_mode: AuthMode | str = AuthMode.NONE,
        token: str | None = None,
    ) -> Outcome:
        """Create a new, disabled project record.

        Raises:
            InvalidProjectIdError: If the id does not match the grammar.
            AlreadyExistsError: If the project exists.
            ValidationError: If another field is invalid.

        """
        record = create_record(
            project_id,
            project_type=project_type,
            path=path.expanduser().absolute(),
            repo_url=repo_url,
            sub_path=sub_path,
            auth_mode=auth_mode,
            token=token,
        )
        self.store.create(record)
        return Outcome.success(f"Added project {project_id}, enable it with 'deckhand enable {project_id}'")

    def remove(self, project_id: str) -> Outcome:
        """Delete a disabled project's record and managed files.

        Raises:
            ProjectStateError: If the project is enabled.

        """
        ctx = self.context(project_id)
        if ctx.enabled:
            raise ProjectStateError(f"Project {project_id} is enabled, disable it first")
        if not self.interaction.approve(f"Are you sure you want to remove project {project_id}?"):
            return Outcome.warning("Cancelled")

        self.store.delete(project_id)
        for suffix in MANAGED_SUFFIXES:
            managed = ctx.managed_file(suffix)
            for path in (managed, *backup_paths(managed)):
                path.unlink(missing_ok=True)

        if ctx.sub_path_mode and ctx.gitpath.is_dir():
            if self.interaction.confirm(f"Remove the full git repository at {ctx.gitpath}?"):
                shutil.rmtree(ctx.gitpath)
                logger.info("Removed git repository %s", ctx.gitpath)
                if ctx.path.is_symlink():
                    ctx.path.unlink()
                    ctx.path.mkdir(parents=True, exist_ok=True)
                    logger.info("Replaced link %s by an empty directory", ctx.path)
            else:
                logger.info("Keeping git repository %s for reuse", ctx.gitpath)

        return Outcome.success(f"Removed project {project_id}")

    def list_entry(self, project_id: str) -> ListEntry:
        ctx = self.context(project_id)
        state = None
        if ctx.enabled and ctx.backend is not None:
            state = ctx.backend.status(ctx)
        return ListEntry(id=ctx.id, type=ctx.record.type, enabled=ctx.enabled, path=ctx.path, state=state)

    # -- install --------------------------------------------------------------

    def _prepare_workspace(self, ctx: ProjectContext) -> None:
        """Make sure the working copy and, in sub-path mode, the alias exist."""
        if not ctx.record.has_repo:
            if not ctx.path.is_dir():
                raise NotFoundError(f"Project path {ctx.path} does not exist and no repository is configured")
            return

        gitpath = ctx.gitpath
        if ctx.sub_path_mode and not gitpath.exists() and not ctx.path.is_symlink():
            if self.git.is_working_copy(ctx.path):
                if ctx.enabled:
                    raise ProjectStateError(
                        f"Found existing git repository at {ctx.path}, cannot move it to {gitpath} "
                        "while the project is enabled, disable it first"
                    )
                logger.info("Moving existing git repository %s to %s", ctx.path, gitpath)
                gitpath.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(ctx.path), str(gitpath))

        url = self.repo_url(ctx) if self.git.needs_clone(gitpath) else RepoURL.plain(ctx.record.repo_url)
        self.git.clone_or_verify(gitpath, url)

        if ctx.sub_path_mode:
            target = gitpath / (ctx.record.sub_path or "")
            if not target.is_dir():
                raise NotFoundError(f"Sub-path {ctx.record.sub_path} not found in repository at {gitpath}")
            if ctx.path.is_dir() and not ctx.path.is_symlink() and not any(ctx.path.iterdir()):
                ctx.path.rmdir()
            if ensure_link(ctx.path, target):
                logger.info("Linked %s to %s", ctx.path, target)

    def install(self, ctx: ProjectContext) -> Outcome:
        backend = self._backend(ctx, "install")
        self._prepare_workspace(ctx)
        return backend.install(ctx)

    # -- enable / disable -----------------------------------------------------

    def enable(self, project_id: str) -> Outcome:
        """Install and enable a project; re-install it if already enabled."""
        ctx = self.context(project_id)
        backend = self._backend(ctx, "enable")
        was_enabled = ctx.enabled

        try:
            installed = self.install(ctx)
        except (DeckhandError, OSError):
            self._save(ctx, enabled=False)
            logger.error(
                "Install failed for %s, %s",
                project_id,
                "disabling project" if was_enabled else "project remains disabled",
            )
            raise

        if not was_enabled:
            self._save(ctx, enabled=True)
            return combine(Outcome.success(f"Installed and enabled {project_id}"), installed)

        reinstalled = combine(Outcome.success(f"Re-installed {project_id}, it was already enabled"), installed)
        if backend.status(ctx) is RunningState.RUNNING:
            logger.info("Restarting %s after re-install", project_id)
            return combine(reinstalled, self._trigger(ctx, backend, backend.restart, RunningState.RUNNING, "restart"))
        return reinstalled

    def disable(self, project_id: str) -> Outcome:
        """Uninstall and disable a project. Never leaves it enabled."""
        ctx = self.context(project_id)
        if not ctx.enabled:
            return Outcome.warning("Already disabled, skipping")

        if ctx.backend is None:
            self._save(ctx, enabled=False)
            return Outcome.warning(f"Unknown or unsupported type '{ctx.record.type}', disabled without uninstalling")

        try:
            uninstalled = ctx.backend.uninstall(ctx)
        except (DeckhandError, OSError) as e:
            logger.debug("Uninstall of %s failed", project_id, exc_info=True)
            uninstalled = Outcome.warning(f"Uninstall failed ({e}), project disabled anyway")

        self._save(ctx, enabled=False)
        return combine(Outcome.success(f"Uninstalled and disabled {project_id}"), uninstalled)

    # -- start / stop / restart -----------------------------------------------

    def _trigger(
        self,
        ctx: ProjectContext,
        backend: Backend,
        trigger: Callable[[ProjectContext], None],
        expected: RunningState,
        verb: str,
    ) -> Outcome:
        trigger(ctx)
        if not backend.confirms_status:
            return Outcome.success(f"Triggered {verb} of {ctx.id}")

        confirmation = confirm_state(
            expected,
            lambda: backend.status(ctx),
            max_attempts=self.max_attempts,
            interval=self.settings.status_check_interval,
            sleep=self.sleep,
        )
        if confirmation.result is ConfirmResult.CONFIRMED:
            return Outcome.success(f"{ctx.id} is {expected} after {verb}")
        if confirmation.result is ConfirmResult.TIMED_OUT:
            return Outcome.failed(
                f"Failed to {verb} {ctx.id}, still {confirmation.final_state} "
                f"after {confirmation.waited * 1000:.0f}ms"
            )
        return Outcome.warning(f"Running status of {ctx.id} unknown after {verb}")

    def start(self, project_id: str) -> Outcome:
        ctx = self.context(project_id)
        if not ctx.enabled:
            return Outcome.warning("Not enabled, skipping start")
        backend = self._backend(ctx, "start")
        if backend.status(ctx) is RunningState.RUNNING and not self.interaction.approve(
            "Project seems to be running. Trigger start anyway?"
        ):
            return Outcome.success("Already running, skipping start")
        return self._trigger(ctx, backend, backend.start, RunningState.RUNNING, "start")

    def stop(self, project_id: str) -> Outcome:
        ctx = self.context(project_id)
        backend = self._backend(ctx, "stop")
        if backend.status(ctx) is RunningState.STOPPED and not self.interaction.approve(
            "Project seems to be stopped. Trigger stop anyway?"
        ):
            return Outcome.success("Already stopped, skipping stop")
        return self._trigger(ctx, backend, backend.stop, RunningState.STOPPED, "stop")

    def restart(self, project_id: str) -> Outcome:
        ctx = self.context(project_id)
        if not ctx.enabled:
            return Outcome.warning("Not enabled, skipping restart")
        backend = self._backend(ctx, "restart")
        if backend.status(ctx) is RunningState.STOPPED and not self.interaction.approve(
            "Project seems to be stopped. Restart anyway?"
        ):
            return Outcome.success("Not running, skipping restart")
        return self._trigger(ctx, backend, backend.restart, RunningState.RUNNING, "restart")

    # -- status / logs / shell ------------------------------------------------

    def status(self, project_id: str) -> StatusReport:
        """Collect the status report of one project."""
        ctx = self.context(project_id)
        state = None
        details: dict[str, str] = {}
        if ctx.backend is not None:
            state = ctx.backend.status(ctx)
            details = ctx.backend.details(ctx)

        git = None
        if ctx.record.has_repo and self.git.is_working_copy(ctx.gitpath):
            git = self.git.compare_upstream(ctx.gitpath)

        return StatusReport(
            id=ctx.id,
            type=ctx.record.type,
            enabled=ctx.enabled,
            path=ctx.path,
            repository=mask_url(ctx.record.repo_url),
            sub_path=ctx.record.sub_path,
            authentication=ctx.describe_auth(),
            state=state,
            details=details,
            git=git,
        )

    def native_status(self, project_id: str, *, batch: bool) -> Outcome | None:
        """Show the backend's own status output (single project only, except scripts)."""
        ctx = self.context(project_id)
        backend = self._backend(ctx, "check status of")
        return backend.native_status(ctx, batch=batch)

    def logs(self, project_id: str, lines: int | None, *, batch: bool = False) -> Outcome:
        """Show logs. Following is replaced by a fixed tail when several projects are shown."""
        ctx = self.context(project_id)
        backend = self._backend(ctx, "show logs of")
        if lines is None and batch:
            lines = self.settings.log_lines
        backend.logs(ctx, lines)
        return Outcome.success()

    def shell(self, project_id: str) -> Outcome:
        """Open a shell in a running container of an enabled container project."""
        ctx = self.context(project_id)
        backend = ctx.backend
        if not isinstance(backend, ContainerBackend):
            raise ValidationError("Shell is only available for container projects")
        if not ctx.enabled:
            raise ProjectStateError(f"Project {project_id} is not enabled, cannot open a shell")
        if backend.status(ctx) is not RunningState.RUNNING:
            raise ProjectStateError(f"Project {project_id} is not running, cannot open a shell")

        services = backend.services(ctx)
        if not services:
            raise NotFoundError(f"Could not determine service names of {project_id}")
        service = pick_service(services, self.interaction)
        logger.info("Opening shell for %s service %s", project_id, service)
        backend.shell(ctx, service)
        return Outcome.success()

    # -- update ---------------------------------------------------------------

    def _update_repository(self, ctx: ProjectContext) -> Outcome | None:
        if not ctx.record.has_repo:
            return None
        if not self.git.is_working_copy(ctx.gitpath):
            return Outcome.warning(f"{ctx.gitpath} is not a git repository, skipping repository update")
        result = self.git.pull(ctx.gitpath, self.repo_url(ctx))
        if result.updated:
            return Outcome.success(f"Updated repository from {result.old} to {result.new}")
        return Outcome.success("Repository already up to date")

    def _update_images(self, ctx: ProjectContext, backend: ContainerBackend) -> Outcome | None:
        if not backend.descriptor(ctx).is_file():
            return None
        images = backend.images(ctx)
        if not images:
            return Outcome.warning("No images to update found in compose file")

        updated = 0
        for image in images:
            if backend.pull_image(image):
                updated += 1
                logger.info("%s: updated", image)
            else:
                logger.info("%s: already up to date", image)
            for dangling in backend.dangling_images(image):
                self.dangling.append((ctx.id, dangling))

        if updated:
            return Outcome.success(f"Updated {updated} image(s)")
        return Outcome.success("All images already up to date")

    def update(self, project_id: str) -> Outcome:
        """Update a project's sources and images, then re-install and restart."""
        ctx = self.context(project_id)
        backend = self._backend(ctx, "update")
        was_running = backend.status(ctx) is RunningState.RUNNING

        steps: list[Outcome | None] = []
        if backend.run_hook(ctx, UPDATE_HOOK):
            steps.append(Outcome.success(f"Ran {UPDATE_HOOK}"))
        else:
            steps.append(self._update_repository(ctx))
            if isinstance(backend, ContainerBackend):
                steps.append(self._update_images(ctx, backend))

        if not ctx.enabled:
            steps.append(Outcome.success("Project is disabled, skipping re-install"))
            return combine(*steps)

        try:
            steps.append(self.install(ctx))
        except DeckhandError as e:
            steps.append(Outcome.failed(f"Post-update install failed, skipping restart: {e}"))
            return combine(*steps)

        if was_running:
            logger.info("Restarting %s after update", project_id)
            steps.append(self._trigger(ctx, backend, backend.restart, RunningState.RUNNING, "restart"))
        else:
            steps.append(Outcome.success("Not running, skipping restart"))
        return combine(*steps)

    def remove_dangling_images(self) -> None:
        """Remove every dangling image collected by updates."""
        image_ids = list(dict.fromkeys(image.image_id for _, image in self.dangling))
        ContainerBackend(self.runner).remove_images(image_ids)
        self.dangling.clear()
