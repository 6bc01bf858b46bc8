"""Repository credentials.

A token is only ever embedded into a repository URL whose host is on the
trusted-host allow-list, and the allow-list is checked before any credential
is read. The global credential lives in one owner-only file and is read
again on every use.
"""

from __future__ import annotations

import logging
import os
import stat
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from deckhand.core.exceptions import CredentialError, PermissionDriftWarning, UntrustedHostError
from deckhand.core.interaction import Interaction
from deckhand.core.masking import mask_token, mask_url
from deckhand.projects.models import AuthMode, ProjectRecord

logger = logging.getLogger(__name__)

CREDENTIAL_MODE = 0o600
_CREDENTIAL_SCHEMES = ("http", "https")


def require_trusted_host(url: str, trusted_hosts: list[str]) -> str:
    """Return the URL's host if a credential may be embedded for it.

    Raises:
        UntrustedHostError: If the URL is not http(s) or its host is not in
            the allow-list.

    """
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    if parts.scheme not in _CREDENTIAL_SCHEMES or host not in trusted_hosts:
        raise UntrustedHostError(
            f"Credential authentication is configured, but {mask_url(url)} is not on a trusted host "
            f"({', '.join(trusted_hosts) or 'none configured'})"
        )
    return host


@dataclass(frozen=True)
class RepoURL:
    """Repository URL, optionally carrying a credential.

    Build it with :meth:`plain` or :meth:`with_credential`; the latter is the
    only way to attach a token and enforces the trusted-host check.
    ``str()`` and :attr:`masked` never reveal the token.
    """

    url: str
    token: str | None = field(default=None, repr=False)

    @classmethod
    def plain(cls, url: str) -> RepoURL:
        return cls(url=url)

    @classmethod
    def with_credential(cls, url: str, token: str, trusted_hosts: list[str]) -> RepoURL:
        require_trusted_host(url, trusted_hosts)
        return cls(url=url, token=token)

    @property
    def authenticated(self) -> str:
        """URL with the token spliced in front of the host."""
        if not self.token:
            return self.url
        parts = urlsplit(self.url)
        netloc = parts.netloc.rsplit("@", 1)[-1]
        return urlunsplit((parts.scheme, f"{self.token}@{netloc}", parts.path, parts.query, parts.fragment))

    @property
    def masked(self) -> str:
        return mask_url(self.authenticated)

    def __str__(self) -> str:
        return self.masked


class CredentialStore:
    """Global credential file access for one invocation.

    Attributes:
        path: Credential file location.
        interaction: Prompt policy used to create the file or fix its mode.

    """

    def __init__(self, path: Path, interaction: Interaction) -> None:
        self.path = path
        self.interaction = interaction

    def _check_mode(self) -> None:
        mode = stat.S_IMODE(self.path.stat().st_mode)
        if mode == CREDENTIAL_MODE:
            return
        warnings.warn(
            f"Global credential file {self.path} has mode {mode:o} instead of {CREDENTIAL_MODE:o}",
            PermissionDriftWarning,
            stacklevel=3,
        )
        if self.interaction.confirm("Fix the credential file permissions now?", default=True):
            os.chmod(self.path, CREDENTIAL_MODE)
            logger.info("Fixed permissions of %s", self.path)

    def write(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CREDENTIAL_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{token}\n")
        os.chmod(self.path, CREDENTIAL_MODE)
        logger.info("Stored global credential %s in %s", mask_token(token), self.path)

    def read(self) -> str:
        """Read the global credential, prompting for it when missing.

        Raises:
            CredentialError: If the credential is missing or empty and cannot
                be prompted for.

        """
        if not self.path.is_file() or self.path.stat().st_size == 0:
            if self.interaction.quiet:
                raise CredentialError(
                    "No global credential stored, run once without --quiet to provide it"
                )
            token = self.interaction.secret("Global repository access token")
            if not token:
                raise CredentialError("No global credential provided")
            self.write(token)
            return token

        self._check_mode()
        token = self.path.read_text(encoding="utf-8").strip()
        if not token:
            raise CredentialError(
                "Global credential is empty, provide one or reconfigure the project's authentication"
            )
        return token


def resolve_repo_url(
    record: ProjectRecord,
    credentials: CredentialStore,
    trusted_hosts: list[str],
) -> RepoURL:
    """Build the URL used to clone or pull a project's repository.

    Without credential authentication (or with an empty project token) the
    plain URL is used, relying on public access or git's own configuration.

    Raises:
        UntrustedHostError: If authentication is configured for an untrusted host.
        CredentialError: If the global credential is unavailable.

    """
    if record.auth_mode is AuthMode.NONE:
        return RepoURL.plain(record.repo_url)

    require_trusted_host(record.repo_url, trusted_hosts)
    if record.auth_mode is AuthMode.GLOBAL:
        token = credentials.read()
    else:
        token = record.token or ""
    if not token:
        return RepoURL.plain(record.repo_url)
    return RepoURL.with_credential(record.repo_url, token, trusted_hosts)
