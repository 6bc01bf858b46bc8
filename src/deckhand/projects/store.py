"""Project store: one YAML record file per project.

Records live in the managed directory as ``<id>.yaml``. A record may carry a
repository token, so every write leaves the file readable by its owner only.
Keys the current model does not know are read back and written out unchanged.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from deckhand.core.exceptions import (
    AlreadyExistsError,
    NotFoundError,
    ProjectStateError,
    ValidationError,
)
from deckhand.projects.models import ProjectRecord, validate_project_id

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".yaml"
RECORD_MODE = 0o600

# Matches any sequence of characters in a project name pattern
WILDCARD = "*"


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a name pattern where WILDCARD matches any sequence.

    Everything else matches literally and the whole id must match.
    """
    parts = (re.escape(part) for part in pattern.split(WILDCARD))
    return re.compile(".*".join(parts))


class ProjectStore:
    """Reads and writes project records in the managed directory.

    Attributes:
        projects_dir: Managed directory holding ``<id>.yaml`` records.

    """

    def __init__(self, projects_dir: Path) -> None:
        self.projects_dir = projects_dir

    def record_path(self, project_id: str) -> Path:
        return self.projects_dir / f"{project_id}{RECORD_SUFFIX}"

    def exists(self, project_id: str) -> bool:
        return self.record_path(project_id).is_file()

    def _read_raw(self, path: Path) -> dict[str, Any]:
        try:
            with path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValidationError(f"Corrupt project record {path}: {e}") from e
        if not isinstance(data, dict):
            raise ValidationError(f"Corrupt project record {path}: expected a mapping")
        return data

    def load(self, project_id: str) -> ProjectRecord:
        """Load one project record.

        Raises:
            NotFoundError: If no record exists for the id.
            ValidationError: If the record file cannot be parsed.

        """
        path = self.record_path(project_id)
        if not path.is_file():
            raise NotFoundError(f"Project '{project_id}' not found")

        data = self._read_raw(path)
        data["id"] = project_id
        try:
            return ProjectRecord.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid project record {path}: {e}") from e

    def save(self, record: ProjectRecord) -> Path:
        """Write a record, merging onto the existing file's keys.

        Keys set to None are dropped from the file. The file mode is reset to
        owner read/write on every save.

        Returns:
            Path of the written record file.

        """
        path = self.record_path(record.id)
        data = self._read_raw(path) if path.is_file() else {}
        for key, value in record.model_dump(mode="json").items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value

        self.projects_dir.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(f"{RECORD_SUFFIX}.tmp")
        try:
            fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, RECORD_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            os.chmod(temp_path, RECORD_MODE)
            os.replace(temp_path, path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise

        logger.debug("Saved project record %s", path)
        return path

    def list(self, pattern: str | None = None) -> list[str]:
        """List project ids in listing order (sorted by id).

        Args:
            pattern: None for all projects, an id containing WILDCARD for a
                pattern match, otherwise an exact id.

        Returns:
            Matching ids. An exact id that does not exist yields an empty list.

        """
        if not self.projects_dir.is_dir():
            return []
        ids = sorted(
            path.name.removesuffix(RECORD_SUFFIX)
            for path in self.projects_dir.glob(f"*{RECORD_SUFFIX}")
            if path.is_file()
        )
        if pattern is None:
            return ids
        if WILDCARD in pattern:
            compiled = compile_pattern(pattern)
            return [project_id for project_id in ids if compiled.fullmatch(project_id)]
        return [project_id for project_id in ids if project_id == pattern]

    def create(self, record: ProjectRecord) -> Path:
        """Persist a new record.

        Raises:
            InvalidProjectIdError: If the id does not match the grammar.
            AlreadyExistsError: If a record with the id already exists.

        """
        validate_project_id(record.id)
        if self.exists(record.id):
            raise AlreadyExistsError(f"Project '{record.id}' already exists")
        path = self.save(record)
        logger.info("Created project %s (%s)", record.id, record.type)
        return path

    def delete(self, project_id: str) -> None:
        """Delete a record.

        Raises:
            NotFoundError: If no record exists for the id.
            ProjectStateError: If the project is still enabled.

        """
        record = self.load(project_id)
        if record.enabled:
            raise ProjectStateError(
                f"Project '{project_id}' is enabled, disable it before removing"
            )
        self.record_path(project_id).unlink()
        logger.info("Deleted project record %s", project_id)
