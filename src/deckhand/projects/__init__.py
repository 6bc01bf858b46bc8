"""Project records, the store that persists them, and target selection."""

from deckhand.projects.models import (
    AuthMode,
    ProjectContext,
    ProjectRecord,
    ProjectType,
    create_record,
    validate_project_id,
)
from deckhand.projects.selector import (
    BatchResult,
    Selection,
    confirm_selection,
    resolve_selection,
    run_batch,
)
from deckhand.projects.store import WILDCARD, ProjectStore

__all__ = [
    "WILDCARD",
    "AuthMode",
    "BatchResult",
    "ProjectContext",
    "ProjectRecord",
    "ProjectStore",
    "ProjectType",
    "Selection",
    "confirm_selection",
    "create_record",
    "resolve_selection",
    "run_batch",
    "validate_project_id",
]
