"""Lifecycle orchestration and self-update."""

from deckhand.lifecycle.orchestrator import ListEntry, Orchestrator, StatusReport, combine, pick_service
from deckhand.lifecycle.self_update import RELAUNCH_FLAG, RestartRequested, SelfUpdater, relaunch

__all__ = [
    "RELAUNCH_FLAG",
    "ListEntry",
    "Orchestrator",
    "RestartRequested",
    "SelfUpdater",
    "StatusReport",
    "combine",
    "pick_service",
    "relaunch",
]
