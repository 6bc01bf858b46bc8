"""Entry point for ``python -m deckhand`` (also used by the self-update relaunch)."""

from deckhand.cli import app

if __name__ == "__main__":
    app(prog_name="deckhand")
