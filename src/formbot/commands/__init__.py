"""Subcommand modules for formbot.

Command modules import their services inside the callback so
``formbot --help`` does not pull in SQLAlchemy or httpx.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Attach every standalone command to the root group."""
    from formbot.commands.migrate import migrate
    from formbot.commands.run import run
    from formbot.commands.validate import validate

    cli.add_command(validate)
    cli.add_command(migrate)
    cli.add_command(run)
