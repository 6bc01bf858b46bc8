"""Backend artifact selection and retirement.

An artifact is the descriptor driving a container or service project (a
compose file or a unit file). It lives in the managed directory as
``<id><suffix>`` and is either an authoritative regular file or a symlink
into the project's source tree.

Selection order:

1. a regular file already in the managed directory (never overwritten)
2. the conventionally named file in the project path
3. the default-named fallback file in the project path
4. an existing symlink in the managed directory that still resolves
5. a descriptor synthesized from the project's sources (container only)
6. interactive generation

Selecting again without external changes leaves the filesystem untouched.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from deckhand.core.exceptions import NotFoundError, ProjectStateError

logger = logging.getLogger(__name__)

BACKUP_GENERATIONS = 2

ContentFactory = Callable[[], str | None]


class ArtifactSource(StrEnum):
    """Where a selected artifact came from."""

    MANAGED_FILE = "managed file"
    CONVENTIONAL = "project file"
    FALLBACK = "default project file"
    EXISTING_LINK = "existing link"
    SYNTHESIZED = "synthesized"
    GENERATED = "generated"


@dataclass(frozen=True)
class Artifact:
    """A selected artifact.

    Attributes:
        path: Location in the managed directory.
        source: Which selection rule produced it.
        target: Resolved symlink target, None for regular files.

    """

    path: Path
    source: ArtifactSource
    target: Path | None = None

    def describe(self) -> str:
        if self.target is not None:
            return f"{self.path} -> {self.target}"
        return str(self.path)


def link_target(path: Path) -> Path | None:
    """Return the resolved target of a symlink, None for anything else."""
    if not path.is_symlink():
        return None
    return path.resolve()


def ensure_link(link: Path, target: Path) -> bool:
    """Point ``link`` at ``target``, repairing only a mismatch.

    Returns:
        True if the link was created or replaced, False if it was correct.

    Raises:
        ProjectStateError: If something other than a symlink occupies ``link``.

    """
    if link.is_symlink():
        if link.resolve() == target.resolve():
            return False
        link.unlink()
    elif link.exists():
        raise ProjectStateError(f"{link} exists and is not a symlink, refusing to replace it")
    link.parent.mkdir(parents=True, exist_ok=True)
    link.symlink_to(target.absolute())
    return True


def _write(path: Path, content: str) -> None:
    if path.is_symlink():
        path.unlink()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def select_artifact(
    managed: Path,
    candidates: Sequence[tuple[Path, ArtifactSource]],
    *,
    synthesize: ContentFactory | None = None,
    generate: ContentFactory | None = None,
) -> Artifact:
    """Select (and if needed link or write) the artifact for a project.

    Args:
        managed: Artifact location in the managed directory.
        candidates: Project files to link to, in priority order.
        synthesize: Returns generated content, or None when there is nothing
            to synthesize from.
        generate: Interactive generation, returns content or None when the
            operator declined.

    Returns:
        The selected artifact.

    Raises:
        NotFoundError: If no rule produced an artifact.

    """
    if managed.is_file() and not managed.is_symlink():
        logger.info("Using %s", managed)
        return Artifact(managed, ArtifactSource.MANAGED_FILE)

    for candidate, source in candidates:
        if candidate.is_file():
            if ensure_link(managed, candidate):
                logger.info("Linked %s to %s", managed, candidate)
            return Artifact(managed, source, link_target(managed))

    if managed.is_symlink() and managed.exists():
        logger.info("Keeping linked %s", managed)
        return Artifact(managed, ArtifactSource.EXISTING_LINK, link_target(managed))

    for factory, source in ((synthesize, ArtifactSource.SYNTHESIZED), (generate, ArtifactSource.GENERATED)):
        if factory is None:
            continue
        content = factory()
        if content is not None:
            _write(managed, content)
            logger.info("Wrote %s artifact %s", source, managed)
            return Artifact(managed, source)

    raise NotFoundError(f"No artifact could be determined for {managed.name}")


def backup_paths(path: Path, generations: int = BACKUP_GENERATIONS) -> list[Path]:
    """Backup locations, newest first: ``<name>.bak``, ``<name>.bak2``."""
    return [path.with_name(f"{path.name}.bak{'' if n == 1 else n}") for n in range(1, generations + 1)]


def rotate_backups(path: Path, generations: int = BACKUP_GENERATIONS) -> Path:
    """Move ``path`` into the newest backup slot.

    The oldest generation is discarded and every other one shifts one slot
    older.

    Returns:
        The newest backup path.

    """
    backups = backup_paths(path, generations)
    backups[-1].unlink(missing_ok=True)
    for newer, older in zip(reversed(backups[:-1]), reversed(backups[1:]), strict=True):
        if newer.exists():
            newer.replace(older)
    path.replace(backups[0])
    return backups[0]


def retire_artifact(path: Path, regenerated: str | None) -> Path | None:
    """Remove a generated artifact, keeping a backup when it was edited.

    Content byte-identical to a fresh regeneration is deleted outright;
    anything else is rotated into the backups.

    Returns:
        The backup path, or None when the file was deleted.

    """
    if regenerated is not None and path.read_bytes() == regenerated.encode("utf-8"):
        path.unlink()
        logger.info("Removed unchanged generated file %s", path)
        return None
    backup = rotate_backups(path)
    logger.info("Moved %s to backup %s", path, backup)
    return backup
