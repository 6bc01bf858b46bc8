"""Operator interaction policy.

Wraps questionary prompts behind the ``--quiet`` and ``--force`` switches so
drivers and the orchestrator never talk to the terminal directly.

- quiet: never prompt. Yes/no questions answer "no"; questions that need a
  typed answer raise InteractionRequiredError.
- force: confirmations guarding redundant or destructive actions answer "yes"
  without prompting.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypeVar

import questionary

from deckhand.core.exceptions import InteractionRequiredError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_interactive() -> bool:
    """Check whether stdin and stdout are attached to a terminal."""
    return sys.stdin.isatty() and sys.stdout.isatty()


def _answered(answer: T | None) -> T:
    # questionary returns None when the prompt was cancelled with Ctrl+C
    if answer is None:
        raise KeyboardInterrupt
    return answer


@dataclass(frozen=True, slots=True)
class Interaction:
    """How to resolve questions during one invocation."""

    quiet: bool = False
    force: bool = False

    def confirm(self, question: str, default: bool = False) -> bool:
        """Ask a yes/no question. Always "no" under quiet mode."""
        if self.quiet:
            logger.debug("Quiet mode, answering no: %s", question)
            return False
        return bool(_answered(questionary.confirm(question, default=default).ask()))

    def approve(self, question: str) -> bool:
        """Confirm a redundant or destructive action; force answers "yes"."""
        if self.force:
            return True
        return self.confirm(question)

    def ask(self, question: str, default: str = "") -> str:
        """Ask for a line of text.

        Raises:
            InteractionRequiredError: Under quiet mode.

        """
        if self.quiet:
            raise InteractionRequiredError(f"Input required ({question}), run without --quiet")
        return str(_answered(questionary.text(question, default=default).ask())).strip()

    def secret(self, question: str) -> str:
        """Ask for a secret without echoing it.

        Raises:
            InteractionRequiredError: Under quiet mode.

        """
        if self.quiet:
            raise InteractionRequiredError(f"Input required ({question}), run without --quiet")
        return str(_answered(questionary.password(question).ask())).strip()

    def choose(self, question: str, choices: Sequence[str]) -> str:
        """Pick one of several choices. Under quiet mode the first one wins."""
        if not choices:
            raise ValueError("choices must not be empty")
        if self.quiet:
            return choices[0]
        return str(_answered(questionary.select(question, choices=list(choices)).ask()))
