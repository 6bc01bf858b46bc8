"""Target selection and sequential batch execution.

A name argument resolves to an ordered list of project ids:

- omitted: every project (always batch semantics)
- contains the wildcard marker: every matching project; a single match
  narrows to single-target semantics
- anything else: exactly that project, which must exist
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from deckhand.core.exceptions import (
    AmbiguousSelectionError,
    DeckhandError,
    NotFoundError,
    ValidationError,
)
from deckhand.core.interaction import Interaction
from deckhand.core.types import Outcome
from deckhand.projects.store import WILDCARD, ProjectStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """Resolved targets of one command.

    Attributes:
        ids: Target ids in listing order.
        pattern: Name argument as given (None when omitted).
        all_projects: True when the name argument was omitted.
        total: Number of projects in the store.

    """

    ids: list[str]
    pattern: str | None = None
    all_projects: bool = False
    total: int = 0

    @property
    def is_batch(self) -> bool:
        return self.all_projects or len(self.ids) > 1


def resolve_selection(
    store: ProjectStore,
    name: str | None,
    *,
    allow_multiple: bool = True,
) -> Selection:
    """Resolve a name argument against the store.

    Args:
        store: Project store to list from.
        name: Project id, wildcard pattern, or None for all projects.
        allow_multiple: False for commands that act on exactly one project.

    Returns:
        The resolved selection.

    Raises:
        NotFoundError: If nothing matches.
        ValidationError: If no name was given to a single-project command.
        AmbiguousSelectionError: If a pattern matches several projects for a
            single-project command.

    """
    all_ids = store.list()

    if not name:
        if not all_ids:
            raise NotFoundError(f"No projects found in {store.projects_dir}")
        if not allow_multiple:
            raise ValidationError("Please specify a project name")
        return Selection(ids=all_ids, all_projects=True, total=len(all_ids))

    if WILDCARD in name:
        matches = store.list(name)
        if not matches:
            raise NotFoundError(f"No projects match pattern '{name}'")
        if len(matches) > 1 and not allow_multiple:
            raise AmbiguousSelectionError(
                f"Pattern '{name}' is ambiguous, matching projects: {', '.join(matches)}",
                pattern=name,
                candidates=matches,
            )
        return Selection(ids=matches, pattern=name, total=len(all_ids))

    if not store.exists(name):
        raise NotFoundError(f"Project '{name}' not found")
    return Selection(ids=[name], pattern=name, total=len(all_ids))


def confirm_selection(selection: Selection, verb: str, interaction: Interaction) -> bool:
    """Gate a batch behind a confirmation prompt.

    Single targets, forced and non-interactive runs proceed without asking.
    """
    if not selection.is_batch or interaction.force or interaction.quiet:
        return True
    count = len(selection.ids)
    if selection.all_projects:
        question = f"Are you sure you want to {verb} ALL {count} projects?"
    else:
        question = f"Are you sure you want to {verb} these {count} projects ({', '.join(selection.ids)})?"
    return interaction.confirm(question)


@dataclass
class BatchResult:
    """Per-target outcomes of a batch, in execution order."""

    outcomes: list[tuple[str, Outcome]] = field(default_factory=list)

    def add(self, project_id: str, outcome: Outcome) -> None:
        self.outcomes.append((project_id, outcome))

    @property
    def failed(self) -> list[str]:
        return [project_id for project_id, outcome in self.outcomes if not outcome.ok]

    @property
    def ok(self) -> bool:
        return not self.failed


def run_batch(
    ids: list[str],
    action: Callable[[str], Outcome],
    *,
    on_target: Callable[[str, int], None] | None = None,
    on_outcome: Callable[[str, Outcome], None] | None = None,
) -> BatchResult:
    """Run an action over each target strictly in order.

    A DeckhandError or OSError raised for one target is recorded as a failed
    outcome and the next target still runs. KeyboardInterrupt aborts the whole batch.

    Args:
        ids: Target ids in listing order.
        action: Operation run for one project id.
        on_target: Called with (id, index) before each target.
        on_outcome: Called with (id, outcome) after each target.

    Returns:
        BatchResult with one outcome per target.

    """
    result = BatchResult()
    for index, project_id in enumerate(ids):
        if on_target is not None:
            on_target(project_id, index)
        try:
            outcome = action(project_id)
        except (DeckhandError, OSError) as e:
            logger.debug("Target %s failed: %s", project_id, e)
            outcome = Outcome.failed(str(e))
        result.add(project_id, outcome)
        if on_outcome is not None:
            on_outcome(project_id, outcome)
    return result
