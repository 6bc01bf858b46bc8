"""Bounded status confirmation.

Start and stop triggers return before the project actually reached the new
state. This module turns them into a synchronous, confirmed outcome by
polling the backend's status probe at a fixed interval.

The attempt cap counts re-checks after the immediate first probe, so
``max_attempts=0`` means a single immediate check and the default of 10 with
a 100ms interval waits at most one second. Only the confirmation is bounded,
never the triggering command itself.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeVar

from deckhand.core.types import RunningState

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_INTERVAL = 0.1


def poll_until(
    probe: Callable[[], T],
    predicate: Callable[[T], bool],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    interval: float = DEFAULT_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[bool, T, int]:
    """Probe until the predicate holds or the attempt cap is reached.

    Args:
        probe: Callable returning the current observation.
        predicate: Returns True when the observation is the one awaited.
        max_attempts: Re-checks after the first probe. 0 = single check.
        interval: Seconds slept before each re-check.
        sleep: Sleep function (injected by tests).

    Returns:
        Tuple of (matched, last_observation, probes_issued).

    Raises:
        ValueError: If max_attempts is negative.

    """
    if max_attempts < 0:
        raise ValueError(f"max_attempts must be >= 0, got {max_attempts}")

    probes = 0
    while True:
        if probes > 0:
            sleep(interval)
        observation = probe()
        probes += 1
        if predicate(observation):
            return True, observation, probes
        if probes > max_attempts:
            return False, observation, probes


class ConfirmResult(StrEnum):
    """Result of waiting for an expected running state."""

    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Confirmation:
    """Outcome of :func:`confirm_state`.

    Attributes:
        result: CONFIRMED, TIMED_OUT (definite opposite state) or UNKNOWN.
        final_state: Last observed running state.
        attempts: Number of probes issued.
        waited: Seconds spent sleeping between probes.

    """

    result: ConfirmResult
    final_state: RunningState
    attempts: int
    waited: float


def confirm_state(
    expected: RunningState,
    probe: Callable[[], RunningState],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    interval: float = DEFAULT_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> Confirmation:
    """Wait until ``probe`` reports ``expected``.

    On exhaustion a definite final state (the opposite of expected) is a
    timeout; an UNKNOWN final state means the status could not be determined
    and callers should only warn.

    Example:
        >>> states = iter([RunningState.UNKNOWN, RunningState.RUNNING])
        >>> confirm_state(RunningState.RUNNING, lambda: next(states), sleep=lambda s: None).attempts
        2

    """
    matched, final_state, attempts = poll_until(
        probe,
        lambda state: state == expected,
        max_attempts=max_attempts,
        interval=interval,
        sleep=sleep,
    )
    waited = (attempts - 1) * interval

    if matched:
        result = ConfirmResult.CONFIRMED
    elif final_state == RunningState.UNKNOWN:
        result = ConfirmResult.UNKNOWN
    else:
        result = ConfirmResult.TIMED_OUT

    logger.debug(
        "Status confirmation for %s: %s after %d probe(s)", expected, result, attempts
    )
    return Confirmation(result=result, final_state=final_state, attempts=attempts, waited=waited)
