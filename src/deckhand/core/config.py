"""Manager configuration for deckhand.

Settings live in ``deckhand.yaml`` inside the deckhand home directory
(``$DECKHAND_HOME`` or ``~/.config/deckhand``). Every key is optional; a
missing file means all defaults. Relative paths are resolved against the
home directory so the managed directory stays next to the config file.

Usage:
    >>> config = load_config({"status_check_retries": 3})
    >>> get_config().status_check_retries
    3
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from deckhand.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

# XDG-compliant config location
DEFAULT_HOME = Path.home() / ".config" / "deckhand"
HOME_ENV_VAR = "DECKHAND_HOME"
CONFIG_FILENAME = "deckhand.yaml"

DEFAULT_STATUS_CHECK_RETRIES = 10
DEFAULT_STATUS_CHECK_INTERVAL = 0.1
DEFAULT_LOG_LINES = 10


def get_home() -> Path:
    """Return the deckhand home directory (not created)."""
    env_home = os.environ.get(HOME_ENV_VAR)
    if env_home:
        return Path(env_home).expanduser()
    return DEFAULT_HOME


class ManagerConfig(BaseModel):
    """Effective manager settings.

    Attributes:
        home: Directory relative paths are resolved against.
        projects_dir: Managed directory holding records and artifacts.
        credential_file: File holding the global source-control credential.
        trusted_hosts: Hosts a credential may be embedded into a URL for.
        status_check_retries: Re-checks after a start/stop trigger (0 = one check).
        status_check_interval: Seconds between status re-checks.
        log_lines: Lines shown per project when showing logs of several projects.
        default_container_image: Base image for interactively generated Dockerfiles.
        systemd_unit_dir: Directory where unit enablement links are created.
        self_update_repo_url: Pull self-updates from this URL instead of the
            install directory's own upstream.
        install_dir: Override for the detected deckhand install directory.

    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    home: Path = Field(default_factory=get_home)
    projects_dir: Path = Path("projects")
    credential_file: Path = Path("global-credential.txt")
    trusted_hosts: list[str] = Field(default_factory=lambda: ["github.com"])
    status_check_retries: int = Field(default=DEFAULT_STATUS_CHECK_RETRIES, ge=0)
    status_check_interval: float = Field(default=DEFAULT_STATUS_CHECK_INTERVAL, gt=0)
    log_lines: int = Field(default=DEFAULT_LOG_LINES, gt=0)
    default_container_image: str = "node:22-alpine"
    systemd_unit_dir: Path = Path("/etc/systemd/system")
    self_update_repo_url: str | None = None
    install_dir: Path | None = None

    @field_validator("trusted_hosts", mode="before")
    @classmethod
    def coerce_none_to_empty_list(cls, v: Any) -> list[str]:
        """YAML parses empty keys as None."""
        if v is None:
            return []
        return [str(host).lower() for host in v]

    @model_validator(mode="after")
    def resolve_relative_paths(self) -> Self:
        """Anchor relative paths at the home directory."""
        for name in ("projects_dir", "credential_file", "install_dir"):
            value = getattr(self, name)
            if value is not None and not value.is_absolute():
                # frozen model: bypass __setattr__ during validation
                object.__setattr__(self, name, self.home / value.expanduser())
        return self


_config: ManagerConfig | None = None


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_config(source: dict[str, Any] | Path | None = None) -> ManagerConfig:
    """Load and install the manager configuration singleton.

    Args:
        source: A settings mapping, a path to a YAML file, or None to read
            ``deckhand.yaml`` from the home directory (defaults if absent).

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the file cannot be parsed or fails validation.

    """
    global _config

    if source is None:
        config_path = get_home() / CONFIG_FILENAME
        data = _read_config_file(config_path) if config_path.exists() else {}
    elif isinstance(source, Path):
        if not source.is_file():
            raise ConfigError(f"Config file not found: {source}")
        data = _read_config_file(source)
        data.setdefault("home", str(source.resolve().parent))
    else:
        data = dict(source)

    try:
        config = ManagerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    _config = config
    logger.debug("Loaded config: projects_dir=%s", config.projects_dir)
    return config


def get_config() -> ManagerConfig:
    """Return the loaded configuration, loading defaults on first use."""
    if _config is None:
        return load_config()
    return _config


def _reset_config() -> None:
    """Forget the loaded configuration (tests only)."""
    global _config
    _config = None
