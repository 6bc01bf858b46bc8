"""Exception hierarchy for deckhand.

All errors raised on purpose derive from DeckhandError so the CLI and the
batch runner can catch them at one seam. Warnings that must never block an
operation derive from DeckhandWarning and are emitted with ``warnings.warn``.
"""

from __future__ import annotations

from collections.abc import Sequence

__all__ = [
    "AlreadyExistsError",
    "AmbiguousSelectionError",
    "ConfigError",
    "CredentialError",
    "DeckhandError",
    "DeckhandWarning",
    "ExternalToolError",
    "GitError",
    "InteractionRequiredError",
    "InvalidProjectIdError",
    "NotFoundError",
    "PermissionDriftWarning",
    "ProjectStateError",
    "SelfUpdateError",
    "UntrustedHostError",
    "ValidationError",
]


class DeckhandError(Exception):
    """Base class for all deckhand errors."""


class ConfigError(DeckhandError):
    """Manager configuration is missing, unreadable or invalid."""


class ValidationError(DeckhandError):
    """Bad identifier, type or argument. Raised before any side effect."""


class InvalidProjectIdError(ValidationError):
    """Project id does not match the identifier grammar."""


class AlreadyExistsError(ValidationError):
    """A project with the same id already exists."""


class ProjectStateError(ValidationError):
    """Operation is not allowed in the project's current state.

    Examples: removing an enabled project, running a lifecycle operation on a
    project whose stored type is not supported.
    """


class InteractionRequiredError(ValidationError):
    """Operator input is needed but prompts are suppressed (quiet mode)."""


class NotFoundError(DeckhandError):
    """Missing project record or backend artifact."""


class AmbiguousSelectionError(DeckhandError):
    """A name or pattern matched several projects where only one is allowed.

    Attributes:
        pattern: The name or pattern given by the operator.
        candidates: All matching project ids, in listing order.

    """

    def __init__(self, message: str, pattern: str = "", candidates: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.pattern = pattern
        self.candidates = list(candidates)


class ExternalToolError(DeckhandError):
    """An external command (runtime, VCS, service manager, hook) failed.

    Attributes:
        command: The command line that was run, joined with spaces.
        output: Captured stdout and stderr (empty for foreground commands).
        returncode: Exit code, 127 when the executable was not found.

    """

    def __init__(
        self,
        message: str,
        command: str = "",
        output: str = "",
        returncode: int | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.output = output
        self.returncode = returncode


class GitError(ExternalToolError):
    """A git command failed or returned something unusable."""


class CredentialError(DeckhandError):
    """A credential is required but not available."""


class UntrustedHostError(CredentialError):
    """Refused to embed a credential for a host outside the allow-list."""


class SelfUpdateError(DeckhandError):
    """Self-update failed. Nothing was relaunched."""


class DeckhandWarning(UserWarning):
    """Base class for non-blocking deckhand warnings."""


class PermissionDriftWarning(DeckhandWarning):
    """A secret-bearing file does not have owner-only permissions."""
