"""AppContext: shared Click context for all commands.

Created once by the root CLI group and handed to subcommands through
``@click.pass_obj``. Owns logging setup, lazy plugin loading, and the
single place results are printed and exit codes decided.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from formbot.config.logging import configure_logging
from formbot.output.formatters import format_result

if TYPE_CHECKING:
    from formbot.config.settings import FormbotSettings
    from formbot.plugins.manager import PluginManager
    from formbot.services.result import ServiceResult


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    Plugins are discovered on first use so ``--help`` and ``validate``
    never import third-party plugin code.
    """

    def __init__(self, settings: FormbotSettings) -> None:
        self.settings = settings
        self._plugins: PluginManager | None = None
        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

    @property
    def plugins(self) -> PluginManager:
        """The loaded plugin manager (entry points discovered on first access)."""
        if self._plugins is None:
            from formbot.plugins.manager import PluginManager

            self._plugins = PluginManager()
            self._plugins.discover_and_load()
        return self._plugins

    def emit(self, result: ServiceResult) -> None:
        """Print *result* and exit 1 when it failed.

        Success goes to stdout with warnings on stderr (in JSON mode the
        warnings are part of the payload). Failure goes to stderr.
        """
        output = format_result(
            result,
            json_output=self.settings.json_output,
            verbose=self.settings.verbose,
        )
        if result.ok:
            click.echo(output)
            if not self.settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)
