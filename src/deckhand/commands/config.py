"""Config command group for deckhand.

Provides commands to inspect and check the manager configuration:
- `deckhand config show`: Print the effective settings
- `deckhand config verify`: Validate a configuration file

Example:
    $ deckhand config show
    $ deckhand config verify ~/.config/deckhand/deckhand.yaml
"""

import logging
from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from deckhand.cli_utils import EXIT_CONFIG_ERROR, EXIT_SUCCESS, console
from deckhand.core.config import CONFIG_FILENAME, get_config, get_home, load_config
from deckhand.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

config_app = typer.Typer(
    name="config",
    help="Configuration management commands",
    no_args_is_help=True,
)


def _format_value(value: object) -> str:
    if value is None:
        return "-"
    if isinstance(value, list):
        return ", ".join(str(item) for item in value) or "-"
    return str(value)


@config_app.command(name="show")
def show_command() -> None:
    """Show the effective manager settings.

    Relative paths are shown resolved against the deckhand home directory.
    """
    try:
        settings = get_config()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None

    table = Table(title="deckhand settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for name, value in settings.model_dump().items():
        table.add_row(name, _format_value(value))
    console.print(table)


@config_app.command(name="verify")
def verify_command(
    config: Path = typer.Argument(
        None,
        help=f"Path to config file (default: <deckhand home>/{CONFIG_FILENAME})",
    ),
) -> None:
    """Verify a configuration file for errors.

    Exits with code 0 if valid, 2 if the file is missing or invalid.
    """
    if config is None:
        config = get_home() / CONFIG_FILENAME

    config_path = config.expanduser().resolve()

    if not config_path.is_file():
        console.print(f"[red][ERR][/red] Config file not found: {config_path}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    try:
        settings = load_config(config_path)
    except ConfigError as e:
        console.print(f"[red][ERR][/red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None

    logger.debug("Verified config %s", config_path)
    console.print(f"[green][OK][/green] {config_path}")
    console.print(f"      projects directory: {settings.projects_dir}")
    raise typer.Exit(code=EXIT_SUCCESS)
