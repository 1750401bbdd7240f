"""Command: chat with a form in the terminal."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from formbot.commands._base import FormbotCommand

if TYPE_CHECKING:
    from formbot.commands._context import AppContext

_BANNER = "Type /help for commands, !<data> to press a button, @<path> to upload. Ctrl-D quits."


@click.command(
    cls=FormbotCommand,
    examples="""\
  formbot run -f form.json
  formbot run -f form.json --identity alice
  formbot -v run -f form.json""",
)
@click.option(
    "-f",
    "--form",
    "form_path",
    required=True,
    type=click.Path(path_type=Path, dir_okay=False),
    help="Form definition (JSON).",
)
@click.option("--identity", default="console", show_default=True, help="Chat identity to use.")
@click.option("--no-color", is_flag=True, help="Plain conversation output.")
@click.pass_obj
def run(app: AppContext, form_path: Path, identity: str, no_color: bool) -> None:
    """Run the form as a console conversation."""
    from formbot.domain.events import Command, CommandName
    from formbot.domain.template import load_template
    from formbot.errors import ConfigError, StorageError, TemplateError
    from formbot.output.console import create_console
    from formbot.services.bot import FormBot
    from formbot.services.result import ErrorCode, ServiceResult
    from formbot.transport.console import ConsoleTransport, parse_console_line

    try:
        template = load_template(form_path)
    except TemplateError as exc:
        app.emit(
            ServiceResult.failure(
                "run",
                ErrorCode.INVALID_FORM,
                f"{form_path} is not a valid form definition",
                problems=exc.problems,
            )
        )
        return

    console = create_console(file=click.get_text_stream("stdout"), no_color=no_color)
    transport = ConsoleTransport(console)

    try:
        bot = FormBot.from_settings(template, transport, app.settings, plugins=app.plugins)
    except ConfigError as exc:
        app.emit(ServiceResult.failure("run", ErrorCode.CONFIG_ERROR, str(exc)))
        return
    except StorageError as exc:
        app.emit(ServiceResult.failure("run", ErrorCode.STORAGE_ERROR, str(exc)))
        return

    stdin = click.get_text_stream("stdin")
    console.print(_BANNER, style="fb.key")
    lines = 0
    with bot:
        bot.handle(Command(identity, CommandName.START))
        while True:
            line = stdin.readline()
            if not line:
                break
            if not line.strip():
                continue
            lines += 1
            bot.handle(parse_console_line(identity, line))
        stats = bot.stats()

    app.emit(
        ServiceResult(
            ok=True,
            op="run",
            data={"form": template.form_name, "identity": identity, "inputs": lines, **stats},
        )
    )
