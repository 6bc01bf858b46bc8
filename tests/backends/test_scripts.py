"""Tests for the script bundle backend and hook execution."""

import os
from unittest.mock import MagicMock

import pytest

from deckhand.backends.scripts import ScriptsBackend
from deckhand.core.exceptions import ExternalToolError, NotFoundError, ValidationError
from deckhand.core.interaction import Interaction
from deckhand.core.process import run_command
from deckhand.core.types import OutcomeStatus, RunningState


@pytest.fixture
def backend(fake_runner) -> ScriptsBackend:
    return ScriptsBackend(fake_runner)


@pytest.fixture
def ctx(make_context):
    return make_context("scripts")


class TestHooks:
    """Test run_hook on the shared backend base."""

    def test_absent_hook(self, backend, ctx, fake_runner) -> None:
        assert backend.run_hook(ctx, "setup.sh") is False
        assert fake_runner.calls == []

    def test_runs_from_project_path(self, backend, ctx, fake_runner, make_hook) -> None:
        hook = make_hook(ctx.path, "start.sh")

        assert backend.run_hook(ctx, "start.sh") is True
        assert fake_runner.calls == [[str(hook)]]
        assert fake_runner.options[0]["cwd"] == ctx.path
        assert fake_runner.options[0]["capture"] is False

    def test_not_executable_refused_in_quiet_mode(self, backend, ctx, fake_runner, make_hook) -> None:
        make_hook(ctx.path, "start.sh", executable=False)

        with pytest.raises(ValidationError, match="not executable"):
            backend.run_hook(ctx, "start.sh")
        assert fake_runner.calls == []

    def test_not_executable_fixed_on_confirm(self, make_context, fake_runner, make_hook) -> None:
        """The operator can grant the executable bit."""
        interaction = MagicMock(spec=Interaction, quiet=False, force=False)
        interaction.confirm.return_value = True
        ctx = make_context("scripts", interaction=interaction)
        hook = make_hook(ctx.path, "start.sh", executable=False)

        assert ScriptsBackend(fake_runner).run_hook(ctx, "start.sh") is True
        assert os.access(hook, os.X_OK)

    def test_failing_hook_raises(self, ctx, make_hook) -> None:
        """Hooks are judged by their exit code."""
        make_hook(ctx.path, "setup.sh", body="exit 3")

        with pytest.raises(ExternalToolError) as exc_info:
            ScriptsBackend(run_command).run_hook(ctx, "setup.sh")
        assert exc_info.value.returncode == 3


class TestScriptsBackend:
    """Test the hook mapping of the scripts backend."""

    def test_install_without_setup_warns(self, backend, ctx) -> None:
        outcome = backend.install(ctx)
        assert outcome.status is OutcomeStatus.WARNING

    def test_install_with_setup(self, backend, ctx, make_hook) -> None:
        make_hook(ctx.path, "setup.sh")
        assert backend.install(ctx).status is OutcomeStatus.SUCCESS

    def test_start_requires_hook(self, backend, ctx) -> None:
        with pytest.raises(NotFoundError, match="start.sh"):
            backend.start(ctx)

    def test_restart_prefers_restart_hook(self, backend, ctx, fake_runner, make_hook) -> None:
        restart = make_hook(ctx.path, "restart.sh")
        make_hook(ctx.path, "start.sh")
        make_hook(ctx.path, "stop.sh")

        backend.restart(ctx)

        assert fake_runner.calls == [[str(restart)]]

    def test_restart_falls_back_to_stop_and_start(self, backend, ctx, fake_runner, make_hook) -> None:
        start = make_hook(ctx.path, "start.sh")
        stop = make_hook(ctx.path, "stop.sh")

        backend.restart(ctx)

        assert fake_runner.calls == [[str(stop)], [str(start)]]

    def test_restart_without_any_hook(self, backend, ctx, fake_runner, make_hook) -> None:
        """Half a fallback pair runs nothing."""
        make_hook(ctx.path, "stop.sh")

        with pytest.raises(NotFoundError):
            backend.restart(ctx)
        assert fake_runner.calls == []

    def test_status_always_unknown(self, backend, ctx) -> None:
        assert backend.status(ctx) is RunningState.UNKNOWN
        assert not backend.confirms_status

    def test_uninstall(self, backend, ctx, make_hook) -> None:
        assert backend.uninstall(ctx).status is OutcomeStatus.WARNING
        make_hook(ctx.path, "uninstall.sh")
        assert backend.uninstall(ctx).status is OutcomeStatus.SUCCESS

    def test_native_status_runs_status_hook(self, backend, ctx, fake_runner, make_hook) -> None:
        assert backend.native_status(ctx, batch=True).status is OutcomeStatus.WARNING
        status = make_hook(ctx.path, "status.sh")
        assert backend.native_status(ctx, batch=True) is None
        assert fake_runner.calls[-1] == [str(status)]

    def test_details_lists_present_hooks(self, backend, ctx, make_hook) -> None:
        make_hook(ctx.path, "start.sh")
        make_hook(ctx.path, "stop.sh")
        assert backend.details(ctx) == {"Scripts": "start.sh, stop.sh"}
