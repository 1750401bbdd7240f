"""Command: create the submission table for a form."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from formbot.commands._base import FormbotCommand

if TYPE_CHECKING:
    from formbot.commands._context import AppContext


@click.command(
    cls=FormbotCommand,
    examples="""\
  formbot migrate -f form.json
  FORMBOT_DATABASE__ENABLE=true formbot migrate -f form.json
  formbot -c prod.toml migrate -f form.json""",
)
@click.option(
    "-f",
    "--form",
    "form_path",
    required=True,
    type=click.Path(path_type=Path, dir_okay=False),
    help="Form definition (JSON).",
)
@click.pass_obj
def migrate(app: AppContext, form_path: Path) -> None:
    """Create the form's table with the configured storage adaptor."""
    from formbot.services.forms import migrate_form

    # Plugin adaptors must be registered before the adaptor lookup.
    _ = app.plugins
    app.emit(migrate_form(form_path, app.settings.database, base_dir=app.settings.base_dir))
