"""Tests for bounded status confirmation."""

import pytest

from deckhand.core.retry import ConfirmResult, confirm_state, poll_until
from deckhand.core.types import RunningState


def scripted(*states: RunningState):
    """Probe returning the given states in order, repeating the last one."""
    remaining = list(states)

    def probe() -> RunningState:
        return remaining.pop(0) if len(remaining) > 1 else remaining[0]

    return probe


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class TestPollUntil:
    """Test poll_until."""

    def test_immediate_match_does_not_sleep(self) -> None:
        """A first probe that matches returns without sleeping."""
        sleep = SleepRecorder()
        matched, last, probes = poll_until(lambda: 1, lambda v: v == 1, sleep=sleep)
        assert (matched, last, probes) == (True, 1, 1)
        assert sleep.calls == []

    def test_zero_attempts_means_single_check(self) -> None:
        """max_attempts=0 issues exactly one probe."""
        sleep = SleepRecorder()
        matched, _, probes = poll_until(lambda: 0, lambda v: v == 1, max_attempts=0, sleep=sleep)
        assert not matched
        assert probes == 1
        assert sleep.calls == []

    def test_exhaustion_counts_re_checks(self) -> None:
        """The cap counts re-checks after the first probe."""
        sleep = SleepRecorder()
        matched, _, probes = poll_until(
            lambda: 0, lambda v: v == 1, max_attempts=3, interval=0.5, sleep=sleep
        )
        assert not matched
        assert probes == 4
        assert sleep.calls == [0.5, 0.5, 0.5]

    def test_negative_attempts_rejected(self) -> None:
        """A negative cap is a programming error."""
        with pytest.raises(ValueError):
            poll_until(lambda: 0, bool, max_attempts=-1)


class TestConfirmState:
    """Test confirm_state outcomes."""

    def test_confirmed_after_unknowns(self) -> None:
        """Unknown, Unknown, Running confirms on the third probe."""
        sleep = SleepRecorder()
        confirmation = confirm_state(
            RunningState.RUNNING,
            scripted(RunningState.UNKNOWN, RunningState.UNKNOWN, RunningState.RUNNING),
            max_attempts=10,
            interval=0.1,
            sleep=sleep,
        )
        assert confirmation.result is ConfirmResult.CONFIRMED
        assert confirmation.attempts == 3
        assert confirmation.final_state is RunningState.RUNNING
        assert len(sleep.calls) == 2
        assert confirmation.waited == pytest.approx(0.2)

    def test_timed_out_on_definite_opposite(self) -> None:
        """Exhaustion while still Stopped is a timeout."""
        confirmation = confirm_state(
            RunningState.RUNNING,
            scripted(RunningState.STOPPED),
            max_attempts=2,
            sleep=lambda s: None,
        )
        assert confirmation.result is ConfirmResult.TIMED_OUT
        assert confirmation.final_state is RunningState.STOPPED
        assert confirmation.attempts == 3

    def test_unknown_when_status_never_determined(self) -> None:
        """Exhaustion while Unknown is only a warning case."""
        confirmation = confirm_state(
            RunningState.STOPPED,
            scripted(RunningState.UNKNOWN),
            max_attempts=1,
            sleep=lambda s: None,
        )
        assert confirmation.result is ConfirmResult.UNKNOWN

    def test_bounded_wait(self) -> None:
        """The default cap waits at most attempts * interval."""
        sleep = SleepRecorder()
        confirmation = confirm_state(
            RunningState.RUNNING, scripted(RunningState.STOPPED), sleep=sleep
        )
        assert sum(sleep.calls) == pytest.approx(1.0)
        assert confirmation.waited == pytest.approx(1.0)
