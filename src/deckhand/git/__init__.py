"""Git working copies: credentials, upstream comparison and pulling."""

from deckhand.git.credentials import CredentialStore, RepoURL, resolve_repo_url
from deckhand.git.engine import (
    GitEngine,
    PullResult,
    PullState,
    UpstreamComparison,
    UpstreamState,
)

__all__ = [
    "CredentialStore",
    "GitEngine",
    "PullResult",
    "PullState",
    "RepoURL",
    "UpstreamComparison",
    "UpstreamState",
    "resolve_repo_url",
]
