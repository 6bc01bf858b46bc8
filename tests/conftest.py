"""Pytest configuration and fixtures for deckhand tests."""

from collections.abc import Sequence
from pathlib import Path

import pytest

from deckhand.core.exceptions import ExternalToolError
from deckhand.core.interaction import Interaction
from deckhand.core.process import CommandResult
from deckhand.projects.models import ProjectContext, create_record


class FakeRunner:
    """Command runner double that records calls and replays scripted results.

    Responses are registered per command fragment with :meth:`respond`. The
    first registered fragment contained in the joined command line wins;
    several responses for the same fragment are consumed in order and the
    last one repeats. Unmatched commands succeed with empty output.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.options: list[dict[str, object]] = []
        self._responses: list[tuple[str, list[tuple[int, str]]]] = []

    def respond(self, fragment: str, output: str = "", returncode: int = 0) -> None:
        for known, queue in self._responses:
            if known == fragment:
                queue.append((returncode, output))
                return
        self._responses.append((fragment, [(returncode, output)]))

    def __call__(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        capture: bool = True,
        check: bool = True,
        display: str | None = None,
    ) -> CommandResult:
        command = " ".join(args)
        self.calls.append(list(args))
        self.options.append({"cwd": cwd, "capture": capture, "check": check, "display": display})

        returncode, output = 0, ""
        for fragment, queue in self._responses:
            if fragment in command:
                returncode, output = queue.pop(0) if len(queue) > 1 else queue[0]
                break

        result = CommandResult(command=display or command, returncode=returncode, output=output)
        if check and returncode != 0:
            raise ExternalToolError(
                f"{result.command} failed with exit code {returncode}",
                command=result.command,
                output=output,
                returncode=returncode,
            )
        return result

    @property
    def commands(self) -> list[str]:
        return [" ".join(call) for call in self.calls]

    def ran(self, fragment: str) -> bool:
        return any(fragment in command for command in self.commands)

    def count(self, fragment: str) -> int:
        return sum(1 for command in self.commands if fragment in command)


@pytest.fixture(autouse=True)
def reset_config_singleton(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Reset the config singleton and point the home directory into tmp_path.

    This ensures tests never read or write the real ~/.config/deckhand.
    """
    from deckhand.core.config import _reset_config

    monkeypatch.setenv("DECKHAND_HOME", str(tmp_path / "home"))
    _reset_config()
    yield
    _reset_config()


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def settings(tmp_path: Path):
    """Manager config rooted in tmp_path with a private systemd unit dir."""
    from deckhand.core.config import load_config

    return load_config(
        {
            "home": str(tmp_path / "home"),
            "systemd_unit_dir": str(tmp_path / "systemd"),
            "status_check_retries": 3,
            "status_check_interval": 0.01,
        }
    )


@pytest.fixture
def quiet() -> Interaction:
    return Interaction(quiet=True)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "src" / "shop"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def make_context(settings, quiet, project_dir):
    """Factory for a ProjectContext of a given type rooted at project_dir."""

    def _make(
        project_type: str = "container",
        *,
        project_id: str = "shop",
        path: Path | None = None,
        interaction: Interaction | None = None,
        **fields,
    ) -> ProjectContext:
        record = create_record(
            project_id,
            project_type=project_type,
            path=path or project_dir,
            **fields,
        )
        return ProjectContext(record=record, settings=settings, interaction=interaction or quiet)

    return _make


@pytest.fixture
def make_hook():
    """Factory writing a shell hook into a project directory."""

    def _make(directory: Path, name: str, body: str = "exit 0", executable: bool = True) -> Path:
        hook = directory / name
        hook.write_text(f"#!/bin/sh\n{body}\n")
        hook.chmod(0o755 if executable else 0o644)
        return hook

    return _make
