"""Shared helpers for the deckhand CLI: console, exit codes, logging setup."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from deckhand.core.types import Outcome, OutcomeStatus

console = Console()
err_console = Console(stderr=True)

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130

_OUTCOME_STYLE = {
    OutcomeStatus.SUCCESS: "green",
    OutcomeStatus.WARNING: "yellow",
    OutcomeStatus.FAILED: "red",
}


def _setup_logging(verbose: bool) -> None:
    """Route log records to a Rich handler on stderr.

    Args:
        verbose: Log at DEBUG instead of INFO.

    """
    level = logging.DEBUG if verbose else logging.INFO

    handler = RichHandler(
        console=err_console,
        show_time=verbose,
        show_path=verbose,
        rich_tracebacks=verbose,
        markup=False,
    )
    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
    logging.captureWarnings(True)


def _error(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")


def _info(message: str) -> None:
    console.print(f"[blue]{escape(message)}[/blue]")


def _success(message: str) -> None:
    console.print(f"[green]{escape(message)}[/green]")


def _header(title: str) -> None:
    console.print(f"\n[bold]###   {escape(title)}   ###[/bold]")


def _print_outcome(outcome: Outcome) -> None:
    """Print an outcome message in its status colour. Empty messages print nothing."""
    if not outcome.message:
        return
    style = _OUTCOME_STYLE[outcome.status]
    console.print(f"[{style}]{escape(outcome.message)}[/{style}]", highlight=False)
