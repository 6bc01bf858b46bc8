"""Tests for artifact selection, linking and retirement."""

from pathlib import Path

import pytest

from deckhand.backends.artifacts import (
    ArtifactSource,
    backup_paths,
    ensure_link,
    retire_artifact,
    rotate_backups,
    select_artifact,
)
from deckhand.core.exceptions import NotFoundError, ProjectStateError


@pytest.fixture
def managed_dir(tmp_path: Path) -> Path:
    path = tmp_path / "projects"
    path.mkdir()
    return path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    path = tmp_path / "shop"
    path.mkdir()
    return path


def _candidates(project: Path) -> list[tuple[Path, ArtifactSource]]:
    return [
        (project / "docker-compose.yml", ArtifactSource.CONVENTIONAL),
        (project / "docker-compose-default.yml", ArtifactSource.FALLBACK),
    ]


class TestEnsureLink:
    """Test ensure_link."""

    def test_creates_link(self, tmp_path: Path) -> None:
        target = tmp_path / "target.yml"
        target.write_text("x")
        link = tmp_path / "links" / "link.yml"

        assert ensure_link(link, target) is True
        assert link.is_symlink()
        assert link.resolve() == target.resolve()

    def test_correct_link_untouched(self, tmp_path: Path) -> None:
        """A link already pointing at the target is left alone."""
        target = tmp_path / "target.yml"
        target.write_text("x")
        link = tmp_path / "link.yml"
        ensure_link(link, target)
        before = link.lstat().st_mtime_ns

        assert ensure_link(link, target) is False
        assert link.lstat().st_mtime_ns == before

    def test_wrong_link_repaired(self, tmp_path: Path) -> None:
        old = tmp_path / "old.yml"
        new = tmp_path / "new.yml"
        old.write_text("old")
        new.write_text("new")
        link = tmp_path / "link.yml"
        link.symlink_to(old)

        assert ensure_link(link, new) is True
        assert link.read_text() == "new"

    def test_dangling_link_repaired(self, tmp_path: Path) -> None:
        target = tmp_path / "target.yml"
        target.write_text("x")
        link = tmp_path / "link.yml"
        link.symlink_to(tmp_path / "gone.yml")

        assert ensure_link(link, target) is True
        assert link.resolve() == target.resolve()

    def test_regular_file_refused(self, tmp_path: Path) -> None:
        """A real file is never replaced by a link."""
        target = tmp_path / "target.yml"
        target.write_text("x")
        occupant = tmp_path / "link.yml"
        occupant.write_text("mine")

        with pytest.raises(ProjectStateError):
            ensure_link(occupant, target)
        assert occupant.read_text() == "mine"


class TestSelectArtifact:
    """Test the selection priority."""

    def test_managed_regular_file_wins(self, managed_dir: Path, project: Path) -> None:
        """An authoritative managed file is never overwritten."""
        managed = managed_dir / "shop.compose.yml"
        managed.write_text("custom")
        (project / "docker-compose.yml").write_text("project")

        artifact = select_artifact(managed, _candidates(project))

        assert artifact.source is ArtifactSource.MANAGED_FILE
        assert managed.read_text() == "custom"
        assert not managed.is_symlink()

    def test_conventional_before_fallback(self, managed_dir: Path, project: Path) -> None:
        managed = managed_dir / "shop.compose.yml"
        (project / "docker-compose.yml").write_text("conventional")
        (project / "docker-compose-default.yml").write_text("fallback")

        artifact = select_artifact(managed, _candidates(project))

        assert artifact.source is ArtifactSource.CONVENTIONAL
        assert artifact.target == (project / "docker-compose.yml").resolve()
        assert managed.read_text() == "conventional"

    def test_fallback(self, managed_dir: Path, project: Path) -> None:
        managed = managed_dir / "shop.compose.yml"
        (project / "docker-compose-default.yml").write_text("fallback")

        artifact = select_artifact(managed, _candidates(project))

        assert artifact.source is ArtifactSource.FALLBACK

    def test_existing_link_kept(self, managed_dir: Path, tmp_path: Path, project: Path) -> None:
        """A resolving link into another location is kept."""
        elsewhere = tmp_path / "elsewhere.yml"
        elsewhere.write_text("linked")
        managed = managed_dir / "shop.compose.yml"
        managed.symlink_to(elsewhere)

        artifact = select_artifact(managed, _candidates(project))

        assert artifact.source is ArtifactSource.EXISTING_LINK
        assert managed.resolve() == elsewhere.resolve()

    def test_synthesize_before_generate(self, managed_dir: Path, project: Path) -> None:
        managed = managed_dir / "shop.compose.yml"
        generated: list[str] = []

        artifact = select_artifact(
            managed,
            _candidates(project),
            synthesize=lambda: "synthesized\n",
            generate=lambda: generated.append("called") or "generated\n",
        )

        assert artifact.source is ArtifactSource.SYNTHESIZED
        assert managed.read_text() == "synthesized\n"
        assert generated == []

    def test_generate_when_nothing_to_synthesize(self, managed_dir: Path, project: Path) -> None:
        managed = managed_dir / "shop.compose.yml"

        artifact = select_artifact(
            managed, _candidates(project), synthesize=lambda: None, generate=lambda: "generated\n"
        )

        assert artifact.source is ArtifactSource.GENERATED
        assert managed.read_text() == "generated\n"

    def test_nothing_found(self, managed_dir: Path, project: Path) -> None:
        with pytest.raises(NotFoundError):
            select_artifact(managed_dir / "shop.compose.yml", _candidates(project), generate=lambda: None)

    def test_second_selection_is_idempotent(self, managed_dir: Path, project: Path) -> None:
        """Selecting twice without changes leaves the filesystem untouched."""
        managed = managed_dir / "shop.compose.yml"
        (project / "docker-compose.yml").write_text("conventional")

        select_artifact(managed, _candidates(project))
        first = (managed.is_symlink(), managed.resolve(), managed.lstat().st_mtime_ns)
        select_artifact(managed, _candidates(project))
        second = (managed.is_symlink(), managed.resolve(), managed.lstat().st_mtime_ns)

        assert first == second
        assert sorted(p.name for p in managed_dir.iterdir()) == ["shop.compose.yml"]


class TestBackups:
    """Test backup rotation and retirement."""

    def test_backup_names(self, tmp_path: Path) -> None:
        path = tmp_path / "shop.compose.yml"
        assert [p.name for p in backup_paths(path)] == ["shop.compose.yml.bak", "shop.compose.yml.bak2"]

    def test_rotation_keeps_two_generations(self, tmp_path: Path) -> None:
        """bak moves to bak2, the old bak2 is discarded."""
        path = tmp_path / "shop.compose.yml"
        bak, bak2 = backup_paths(path)
        bak.write_text("previous")
        bak2.write_text("oldest")
        path.write_text("current")

        assert rotate_backups(path) == bak

        assert not path.exists()
        assert bak.read_text() == "current"
        assert bak2.read_text() == "previous"

    def test_unchanged_generated_file_deleted(self, tmp_path: Path) -> None:
        """Byte-identical content is removed without a backup."""
        path = tmp_path / "shop.compose.yml"
        path.write_text("generated\n")

        assert retire_artifact(path, "generated\n") is None

        assert not path.exists()
        assert not any(p.exists() for p in backup_paths(path))

    def test_edited_file_backed_up(self, tmp_path: Path) -> None:
        path = tmp_path / "shop.compose.yml"
        path.write_text("generated\n# my edit\n")

        backup = retire_artifact(path, "generated\n")

        assert backup == backup_paths(path)[0]
        assert backup.read_text() == "generated\n# my edit\n"

    def test_no_regeneration_possible_backs_up(self, tmp_path: Path) -> None:
        """Without fresh content to compare against, the file is kept as a backup."""
        path = tmp_path / "shop.compose.yml"
        path.write_text("generated\n")
        assert retire_artifact(path, None) is not None
