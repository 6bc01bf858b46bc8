"""deckhand command line interface.

Every project command takes an optional project name: omitted means all
projects, a name containing ``*`` selects every matching project, anything
else is one exact project. Several targets run one after another; a failure
is reported and the next target still runs.

Exit codes:
    0 = success (warnings allowed)
    1 = at least one target failed, or a fatal error
    2 = configuration error
    130 = cancelled (Ctrl+C)

Example:
    $ deckhand add blog --type container --path /srv/blog
    $ deckhand enable blog
    $ deckhand status 'blog*'
    $ deckhand update
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from deckhand import __version__
from deckhand.cli_utils import (
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    EXIT_INTERRUPTED,
    EXIT_SUCCESS,
    _error,
    _header,
    _info,
    _print_outcome,
    _setup_logging,
    _success,
    console,
)
from deckhand.commands.config import config_app
from deckhand.core.config import get_config, load_config
from deckhand.core.exceptions import ConfigError, DeckhandError, SelfUpdateError
from deckhand.core.interaction import Interaction, is_interactive
from deckhand.core.process import run_command
from deckhand.core.types import Outcome, RunningState
from deckhand.git import UpstreamComparison, UpstreamState
from deckhand.lifecycle import (
    RELAUNCH_FLAG,
    Orchestrator,
    RestartRequested,
    SelfUpdater,
    StatusReport,
    combine,
    relaunch,
)
from deckhand.projects import (
    AuthMode,
    BatchResult,
    Selection,
    confirm_selection,
    resolve_selection,
    run_batch,
)
from deckhand.projects.models import SUPPORTED_TYPES

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="deckhand",
    help="Install, run and update container, service and script projects on this host",
    no_args_is_help=True,
    add_completion=False,
)
app.add_typer(config_app, name="config")

FOLLOW_VALUES = ("f", "follow")

_STATE_STYLE = {
    RunningState.RUNNING: "green",
    RunningState.STOPPED: "red",
    RunningState.UNKNOWN: "yellow",
}


@dataclass
class CLIState:
    """Global options of one invocation, shared by all commands."""

    interaction: Interaction
    status_checks: bool = True
    relaunched: bool = False
    _orchestrator: Orchestrator | None = field(default=None, repr=False)

    def orchestrator(self) -> Orchestrator:
        """Build the orchestrator on first use (loads the configuration)."""
        if self._orchestrator is None:
            self._orchestrator = Orchestrator(
                get_config(),
                self.interaction,
                runner=run_command,
                status_checks=self.status_checks,
            )
        return self._orchestrator


def _state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        # commands invoked without the callback (direct use in tests)
        state = CLIState(interaction=Interaction(quiet=not is_interactive()))
        ctx.obj = state
    return state


@contextmanager
def _cli_errors() -> Iterator[None]:
    """Map deckhand errors and Ctrl+C to exit codes."""
    try:
        yield
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise typer.Exit(code=EXIT_INTERRUPTED) from None
    except ConfigError as e:
        _error(str(e))
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None
    except DeckhandError as e:
        logger.debug("Command failed", exc_info=True)
        _error(str(e))
        raise typer.Exit(code=EXIT_ERROR) from None
    except OSError as e:
        logger.debug("Command failed", exc_info=True)
        _error(str(e))
        raise typer.Exit(code=EXIT_ERROR) from None


def _select(
    state: CLIState,
    name: str | None,
    verb: str,
    *,
    allow_multiple: bool = True,
    confirm: bool = True,
) -> Selection:
    """Resolve the targets and confirm acting on several of them.

    A relaunched process does not ask again, the operator already answered.
    """
    selection = resolve_selection(state.orchestrator().store, name, allow_multiple=allow_multiple)
    if confirm and not state.relaunched and not confirm_selection(selection, verb, state.interaction):
        console.print("Cancelled.")
        raise typer.Exit(code=EXIT_SUCCESS)
    return selection


def _run_selection(selection: Selection, action: Callable[[str, bool], Outcome]) -> BatchResult:
    """Run an action over the selected projects, printing each outcome.

    Args:
        selection: Resolved targets.
        action: Called with (project id, whether this is a batch).

    """

    def on_target(project_id: str, index: int) -> None:
        if selection.is_batch:
            _header(project_id)

    def on_outcome(project_id: str, outcome: Outcome) -> None:
        if outcome.ok:
            _print_outcome(outcome)
        else:
            _error(f"{project_id}: {outcome.message}")

    return run_batch(
        selection.ids,
        lambda project_id: action(project_id, selection.is_batch),
        on_target=on_target,
        on_outcome=on_outcome,
    )


def _run_targets(
    state: CLIState,
    name: str | None,
    verb: str,
    action: Callable[[str, bool], Outcome],
    *,
    allow_multiple: bool = True,
    confirm: bool = True,
) -> BatchResult:
    """Resolve, confirm and run an action over the selected projects."""
    selection = _select(state, name, verb, allow_multiple=allow_multiple, confirm=confirm)
    return _run_selection(selection, action)


def _finish(result: BatchResult, *, failed_before: bool = False) -> None:
    if len(result.outcomes) > 1 and result.failed:
        _error(f"Failed for {len(result.failed)} project(s): {', '.join(result.failed)}")
    if failed_before or not result.ok:
        raise typer.Exit(code=EXIT_ERROR)


@app.callback()
def main(
    ctx: typer.Context,
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress prompts (for automation)",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Force actions without confirmation prompts (use with caution)",
    ),
    no_status_check: bool = typer.Option(
        False,
        "--no-status-check",
        "-s",
        help="Don't re-check the running status after starting or stopping a project",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output with debug logging",
    ),
    config: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to deckhand.yaml (default: $DECKHAND_HOME/deckhand.yaml)",
    ),
    internal_relaunch: bool = typer.Option(
        False,
        RELAUNCH_FLAG,
        hidden=True,
    ),
) -> None:
    """Install, run and update projects on this host."""
    _setup_logging(verbose=verbose)

    # Without a terminal nobody can answer a prompt
    if not quiet and not is_interactive():
        logger.debug("No terminal attached, enabling quiet mode")
        quiet = True

    if config is not None:
        try:
            load_config(config)
        except ConfigError as e:
            _error(str(e))
            raise typer.Exit(code=EXIT_CONFIG_ERROR) from None

    ctx.obj = CLIState(
        interaction=Interaction(quiet=quiet, force=force),
        status_checks=not no_status_check,
        relaunched=internal_relaunch,
    )


# -- add / remove / list ------------------------------------------------------


def _default_path(project_id: str) -> Path:
    cwd = Path.cwd()
    return cwd if cwd.name == project_id else cwd / project_id


@app.command()
def add(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Project name (lowercase letters, digits, underscores)"),
    project_type: str = typer.Option(
        None,
        "--type",
        "-t",
        help=f"Project type ({'/'.join(SUPPORTED_TYPES)})",
    ),
    path: Path = typer.Option(None, "--path", "-p", help="Project path (default: ./<name>)"),
    repo: str = typer.Option(None, "--repo", "-r", help="Git repository URL"),
    sub_path: str = typer.Option(None, "--sub-path", help="Subdirectory inside the repository"),
    auth: AuthMode = typer.Option(None, "--auth", help="Repository authentication"),
    token: str = typer.Option(None, "--token", help="Project-specific access token (with --auth local)"),
) -> None:
    """Add a new (disabled) project.

    Missing values are asked for interactively. With --quiet, at least the
    name and --type must be given.
    """
    state = _state(ctx)
    interaction = state.interaction
    with _cli_errors():
        orchestrator = state.orchestrator()
        if not name:
            name = interaction.ask("Project name")
        if repo is None and not interaction.quiet:
            repo = interaction.ask("Git repository URL (leave blank for none)")
        repo = repo or ""
        if repo and sub_path is None and not interaction.quiet:
            sub_path = interaction.ask("Subdirectory inside the repository (leave blank for none)") or None
        if auth is None:
            if repo and not interaction.quiet:
                auth = AuthMode(interaction.choose("Repository authentication", [m.value for m in AuthMode]))
            else:
                auth = AuthMode.NONE
        if auth is AuthMode.LOCAL and not token:
            token = interaction.secret("Project-specific access token")
        if path is None:
            default = _default_path(name)
            path = Path(interaction.ask("Project path", default=str(default))) if not interaction.quiet else default
        if not project_type:
            if interaction.quiet:
                _error("Project type is required with --quiet (use --type)")
                raise typer.Exit(code=EXIT_ERROR)
            project_type = interaction.choose("Project type", list(SUPPORTED_TYPES))

        outcome = orchestrator.add(
            name,
            project_type=project_type,
            path=path,
            repo_url=repo,
            sub_path=sub_path,
            auth_mode=auth,
            token=token,
        )
    _print_outcome(outcome)


@app.command()
def remove(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Exact project name"),
) -> None:
    """Remove a disabled project and its managed files."""
    state = _state(ctx)
    with _cli_errors():
        outcome = state.orchestrator().remove(name)
    _print_outcome(outcome)


def _format_state(state: RunningState | None) -> str:
    if state is None:
        return "-"
    style = _STATE_STYLE[state]
    return f"[{style}]{state}[/{style}]"


@app.command(name="list")
def list_projects(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Project name or pattern (default: all)"),
) -> None:
    """List projects with their enabled and running state."""
    state = _state(ctx)
    with _cli_errors():
        orchestrator = state.orchestrator()
        selection = resolve_selection(orchestrator.store, name)

        table = Table(title=f"Projects ({len(selection.ids)} of {selection.total})")
        table.add_column("Name", style="cyan")
        table.add_column("Type")
        table.add_column("Enabled")
        table.add_column("Running")
        table.add_column("Path")

        failed = False
        for project_id in selection.ids:
            try:
                entry = orchestrator.list_entry(project_id)
            except DeckhandError as e:
                failed = True
                table.add_row(project_id, "-", "-", "-", f"[red]{escape(str(e))}[/red]")
                continue
            table.add_row(
                entry.id,
                entry.type,
                "[green]yes[/green]" if entry.enabled else "no",
                _format_state(entry.state),
                str(entry.path),
            )
    console.print(table)
    if failed:
        raise typer.Exit(code=EXIT_ERROR)


# -- lifecycle ----------------------------------------------------------------


@app.command()
def enable(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Project name or pattern (default: all)"),
) -> None:
    """Install and enable project(s); run again to re-install."""
    state = _state(ctx)
    with _cli_errors():
        orchestrator = state.orchestrator()
        result = _run_targets(state, name, "enable", lambda project_id, batch: orchestrator.enable(project_id))
    _finish(result)


@app.command()
def disable(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Project name or pattern (default: all)"),
) -> None:
    """Uninstall and disable project(s)."""
    state = _state(ctx)
    with _cli_errors():
        orchestrator = state.orchestrator()
        result = _run_targets(state, name, "disable", lambda project_id, batch: orchestrator.disable(project_id))
    _finish(result)


@app.command()
def start(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Project name or pattern (default: all)"),
) -> None:
    """Start enabled project(s)."""
    state = _state(ctx)
    with _cli_errors():
        orchestrator = state.orchestrator()
        result = _run_targets(state, name, "start", lambda project_id, batch: orchestrator.start(project_id))
    _finish(result)


@app.command()
def stop(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Project name or pattern (default: all)"),
) -> None:
    """Stop project(s), enabled or not."""
    state = _state(ctx)
    with _cli_errors():
        orchestrator = state.orchestrator()
        result = _run_targets(state, name, "stop", lambda project_id, batch: orchestrator.stop(project_id))
    _finish(result)


@app.command()
def restart(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Project name or pattern (default: all)"),
) -> None:
    """Restart enabled project(s)."""
    state = _state(ctx)
    with _cli_errors():
        orchestrator = state.orchestrator()
        result = _run_targets(state, name, "restart", lambda project_id, batch: orchestrator.restart(project_id))
    _finish(result)


# -- status / logs / shell ----------------------------------------------------


def _format_git(comparison: UpstreamComparison) -> str:
    if comparison.state is UpstreamState.UP_TO_DATE:
        return "[green]up to date[/green]"
    if comparison.state is UpstreamState.BEHIND:
        if comparison.behind:
            return f"[yellow]{comparison.behind} commit(s) behind upstream[/yellow]"
        return "[yellow]update available[/yellow]"
    return f"[red]{comparison.detail}[/red]"


def _print_report(report: StatusReport) -> None:
    rows: list[tuple[str, str]] = [
        ("Type", report.type),
        ("Enabled", "[green]yes[/green]" if report.enabled else "no"),
        ("Running", _format_state(report.state)),
        ("Path", str(report.path)),
    ]
    rows.extend(report.details.items())
    if report.repository:
        rows.append(("Repository", report.repository))
        if report.sub_path:
            rows.append(("Sub-path", report.sub_path))
        rows.append(("Authentication", report.authentication))
    if report.git is not None:
        rows.append(("Git", _format_git(report.git)))

    width = max(len(label) for label, _ in rows) + 1
    for label, value in rows:
        console.print(f"{label + ':':<{width}} {value}", highlight=False)


@app.command()
def status(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Project name or pattern (default: all)"),
) -> None:
    """Show status; extended native status for a single project."""
    state = _state(ctx)

    def show(project_id: str, batch: bool) -> Outcome:
        report = orchestrator.status(project_id)
        _print_report(report)
        if not report.supported:
            return Outcome.warning(f"Unknown or unsupported type '{report.type}'")
        return combine(orchestrator.native_status(project_id, batch=batch))

    with _cli_errors():
        orchestrator = state.orchestrator()
        result = _run_targets(state, name, "check status of", show, confirm=False)
    _finish(result)


def _parse_lines(value: str | None) -> int | None:
    """``f``/``follow`` (or nothing) means follow, otherwise a line count."""
    if value is None or value.lower() in FOLLOW_VALUES:
        return None
    if not value.isdigit():
        raise typer.BadParameter("Line count must be a number or 'f'/'follow'", param_hint="'--lines'")
    return int(value)


@app.command()
def logs(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Project name or pattern (default: all)"),
    lines: str = typer.Option(
        None,
        "--lines",
        "-n",
        help="Show N log lines or 'f' to follow (default: follow; fixed tail for several projects)",
    ),
) -> None:
    """Show logs of project(s)."""
    state = _state(ctx)
    count = _parse_lines(lines)
    with _cli_errors():
        orchestrator = state.orchestrator()
        result = _run_targets(
            state,
            name,
            "show logs for",
            lambda project_id, batch: orchestrator.logs(project_id, count, batch=batch),
        )
    _finish(result)


@app.command()
def shell(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Project name (a pattern must match exactly one project)"),
) -> None:
    """Open a shell in a running container of a container project."""
    state = _state(ctx)
    with _cli_errors():
        orchestrator = state.orchestrator()
        result = _run_targets(
            state,
            name,
            "open shell for",
            lambda project_id, batch: orchestrator.shell(project_id),
            allow_multiple=False,
        )
    _finish(result)


# -- update -------------------------------------------------------------------


def _self_update(state: CLIState, argv: list[str]) -> bool:
    """Run the self-update step; relaunches the process when code changed.

    Returns:
        False if the self-update failed.

    """
    updater = SelfUpdater(get_config(), state.orchestrator().git, relaunched=state.relaunched)
    try:
        result = updater.run(argv)
    except SelfUpdateError as e:
        _error(str(e))
        return False
    if isinstance(result, RestartRequested):
        _success(f"Updated deckhand from {result.old} to {result.new}, restarting")
        relaunch(result.argv)
    _print_outcome(result)
    return result.ok


def _offer_dangling_removal(state: CLIState, orchestrator: Orchestrator) -> None:
    if not orchestrator.dangling:
        return
    _header("OBSOLETE CONTAINER IMAGES")
    console.print("The following dangling images were found:")
    for project_id, image in orchestrator.dangling:
        console.print(f"  {image.image_id}  {image.reference}  ({project_id})", highlight=False)

    image_ids = list(dict.fromkeys(image.image_id for _, image in orchestrator.dangling))
    if state.interaction.confirm("Do you want to remove them now?"):
        orchestrator.remove_dangling_images()
        _success(f"Removed {len(image_ids)} image(s)")
    else:
        _info(f"You can remove them later using `docker rmi -f {' '.join(image_ids)}`")


def _argv() -> list[str]:
    return [arg for arg in sys.argv[1:] if arg != RELAUNCH_FLAG]


@app.command()
def update(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Project name or pattern (default: all, after a self-update)"),
) -> None:
    """Update project(s) from git and their images, then re-install.

    Without a project name deckhand updates itself first.
    """
    state = _state(ctx)
    self_update_failed = False
    with _cli_errors():
        orchestrator = state.orchestrator()
        selection = _select(state, name, "update")
        if selection.all_projects:
            _header("SELF-UPDATE")
            self_update_failed = not _self_update(state, _argv())
        result = _run_selection(selection, lambda project_id, batch: orchestrator.update(project_id))
        _offer_dangling_removal(state, orchestrator)
    _finish(result, failed_before=self_update_failed)


@app.command(name="self-update")
def self_update(ctx: typer.Context) -> None:
    """Update deckhand itself."""
    state = _state(ctx)
    with _cli_errors():
        ok = _self_update(state, _argv())
    if not ok:
        raise typer.Exit(code=EXIT_ERROR)


@app.command()
def version() -> None:
    """Show the deckhand version."""
    console.print(f"deckhand {__version__}")
