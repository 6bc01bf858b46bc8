"""Subcommand groups for the deckhand CLI."""
