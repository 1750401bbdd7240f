"""Root CLI group for formbot with global flags and command registration."""

from __future__ import annotations

import click

from formbot import __version__
from formbot.commands import register_commands
from formbot.commands._base import FormbotGroup
from formbot.commands._context import AppContext
from formbot.config.settings import FormbotSettings


@click.group(
    cls=FormbotGroup,
    invoke_without_command=True,
    examples="""\
  formbot validate -f form.json
  formbot migrate -f form.json
  formbot run -f form.json""",
)
@click.version_option(version=__version__, prog_name="formbot")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging and error detail.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
) -> None:
    """formbot: conversational form bot engine."""
    settings = FormbotSettings.from_cli(
        config_path=config_path,
        json_output=json_output,
        verbose=verbose,
        log_json=log_json,
    )
    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
