"""Core infrastructure: configuration, errors, commands, prompts, polling."""

from deckhand.core.config import ManagerConfig, get_config, load_config
from deckhand.core.exceptions import DeckhandError
from deckhand.core.interaction import Interaction
from deckhand.core.process import CommandResult, CommandRunner, run_command
from deckhand.core.types import Outcome, OutcomeStatus, RunningState

__all__ = [
    "CommandResult",
    "CommandRunner",
    "DeckhandError",
    "Interaction",
    "ManagerConfig",
    "Outcome",
    "OutcomeStatus",
    "RunningState",
    "get_config",
    "load_config",
    "run_command",
]
