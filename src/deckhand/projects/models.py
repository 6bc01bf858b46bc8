"""Project domain models.

A project record is the only persisted state of a managed project. Its
running state is always derived from the backend on demand.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from deckhand.core.config import ManagerConfig
from deckhand.core.exceptions import InvalidProjectIdError, ValidationError
from deckhand.core.interaction import Interaction

if TYPE_CHECKING:
    from deckhand.backends.base import Backend

PROJECT_ID_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*$")

# Suffix of the private full clone used in sub-path mode
REPO_DIR_SUFFIX = ".repo"


class ProjectType(StrEnum):
    """Backend a project is bound to.

    UNSUPPORTED is never stored: it stands for any stored tag deckhand does
    not know, which leaves removal as the only allowed operation.
    """

    CONTAINER = "container"
    SERVICE = "service"
    SCRIPTS = "scripts"
    UNSUPPORTED = "unsupported"

    @classmethod
    def parse(cls, tag: str) -> ProjectType:
        try:
            parsed = cls(tag.strip().lower())
        except ValueError:
            return cls.UNSUPPORTED
        return parsed


SUPPORTED_TYPES = tuple(t for t in ProjectType if t is not ProjectType.UNSUPPORTED)


class AuthMode(StrEnum):
    """How the source repository is authenticated."""

    NONE = "none"
    GLOBAL = "global"
    LOCAL = "local"


def validate_project_id(project_id: str) -> str:
    """Check a project id against the identifier grammar.

    Raises:
        InvalidProjectIdError: If the id is not a lowercase identifier.

    """
    if not PROJECT_ID_PATTERN.fullmatch(project_id):
        raise InvalidProjectIdError(
            f"Invalid project name '{project_id}': must start with a lowercase letter or "
            "underscore and contain only lowercase letters, digits and underscores"
        )
    return project_id


class ProjectRecord(BaseModel):
    """Persisted project record.

    Unknown keys found in a record file are kept (``extra="allow"``) and
    written back unchanged on save.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(exclude=True)
    enabled: bool = False
    type: str
    repo_url: str = ""
    sub_path: str | None = None
    auth_mode: AuthMode = AuthMode.NONE
    token: str | None = None
    path: str

    @property
    def project_type(self) -> ProjectType:
        return ProjectType.parse(self.type)

    @property
    def has_repo(self) -> bool:
        return bool(self.repo_url)


def create_record(
    project_id: str,
    *,
    project_type: str,
    path: Path | str,
    repo_url: str = "",
    sub_path: str | None = None,
    auth_mode: AuthMode | str = AuthMode.NONE,
    token: str | None = None,
) -> ProjectRecord:
    """Build a new, disabled project record after validating its inputs.

    Raises:
        InvalidProjectIdError: If the id does not match the grammar.
        ValidationError: If the type is unsupported, the auth mode unknown,
            local auth lacks a token, or a sub-path is given without a repo.

    """
    validate_project_id(project_id)

    parsed_type = ProjectType.parse(project_type)
    if parsed_type is ProjectType.UNSUPPORTED:
        choices = "/".join(t.value for t in SUPPORTED_TYPES)
        raise ValidationError(f"Invalid project type '{project_type}' ({choices})")

    try:
        mode = AuthMode(auth_mode)
    except ValueError:
        raise ValidationError(f"Invalid auth mode '{auth_mode}'") from None
    if mode is AuthMode.LOCAL and not token:
        raise ValidationError("Auth mode 'local' requires a token")

    sub_path = (sub_path or "").strip("/") or None
    if sub_path and not repo_url:
        raise ValidationError("A sub-path can only be used together with a repository URL")

    return ProjectRecord(
        id=project_id,
        enabled=False,
        type=parsed_type.value,
        repo_url=repo_url,
        sub_path=sub_path,
        auth_mode=mode,
        token=token if mode is AuthMode.LOCAL else None,
        path=str(Path(path).expanduser()),
    )


@dataclass(frozen=True)
class ProjectContext:
    """Everything one operation on one project needs.

    Built once per target by the orchestrator and passed explicitly into
    every backend call.

    Attributes:
        record: The project's persisted record.
        settings: Manager configuration.
        interaction: Prompt policy for this invocation.
        backend: Backend selected for the record's type, None if unsupported.

    """

    record: ProjectRecord
    settings: ManagerConfig
    interaction: Interaction
    backend: Backend | None = None

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def enabled(self) -> bool:
        return self.record.enabled

    @property
    def path(self) -> Path:
        return Path(self.record.path).expanduser()

    @property
    def sub_path_mode(self) -> bool:
        return bool(self.record.sub_path)

    @property
    def gitpath(self) -> Path:
        """Working copy location: the project path or the private full clone."""
        if self.record.sub_path:
            return self.settings.projects_dir / f"{self.id}{REPO_DIR_SUFFIX}"
        return self.path

    def managed_file(self, suffix: str) -> Path:
        """Path of a per-project file in the managed directory."""
        return self.settings.projects_dir / f"{self.id}{suffix}"

    def with_record(self, record: ProjectRecord) -> ProjectContext:
        return replace(self, record=record)

    def describe_auth(self) -> str:
        if self.record.auth_mode is AuthMode.GLOBAL:
            return "Using global credential"
        if self.record.auth_mode is AuthMode.LOCAL and self.record.token:
            return "Using project-specific credential"
        return "Public repository or globally configured"