"""Command: check a form definition without running it."""

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
  formbot validate -f form.json
  formbot --json validate -f form.json""",
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
def validate(app: AppContext, form_path: Path) -> None:
    """Validate a form definition and report every problem found."""
    from formbot.services.forms import validate_form

    app.emit(validate_form(form_path))
