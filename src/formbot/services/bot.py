"""A runnable bot: the engine plus the storage and dispatcher it owns."""

from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING

from formbot.config.models import BotConfig, DatabaseConfig, WebhookConfig
from formbot.errors import ConfigError
from formbot.infrastructure.storage import Storage
from formbot.services.dispatcher import SubmissionDispatcher
from formbot.services.form_engine import FormEngine

if TYPE_CHECKING:
    from formbot.config.settings import FormbotSettings
    from formbot.domain.events import InboundEvent
    from formbot.domain.template import FormTemplate
    from formbot.plugins.manager import PluginManager
    from formbot.transport.base import Transport

logger = logging.getLogger(__name__)


class FormBot:
    """Open persistence and the dispatcher, and build the engine on top.

    Raises at construction on fatal configuration: a dialect mismatch, an
    enabled webhook without a URL, or storage that cannot be opened.
    Use as a context manager, or call :meth:`close`, to drain queued
    submissions and release connections.
    """

    def __init__(
        self,
        template: FormTemplate,
        transport: Transport,
        *,
        bot: BotConfig | None = None,
        database: DatabaseConfig | None = None,
        webhook: WebhookConfig | None = None,
        base_dir: Path | None = None,
        plugins: PluginManager | None = None,
    ) -> None:
        database = database or DatabaseConfig()
        webhook = webhook or WebhookConfig()
        if webhook.enabled and not webhook.url:
            msg = "webhook.enabled is set but webhook.url is empty"
            raise ConfigError(msg)

        self.storage = Storage(database, base_dir=base_dir)
        self.storage.check_template(template)
        self.storage.open()

        self.dispatcher: SubmissionDispatcher | None = None
        if webhook.enabled:
            self.dispatcher = SubmissionDispatcher.from_config(webhook)

        self.engine = FormEngine(
            template,
            transport,
            storage=self.storage,
            dispatcher=self.dispatcher,
            bot=bot,
            plugins=plugins,
        )
        logger.info(
            "Bot ready for form %s (storage=%s, webhook=%s)",
            template.form_name,
            database.use_adaptor if database.enable else "off",
            "on" if self.dispatcher else "off",
        )

    @classmethod
    def from_settings(
        cls,
        template: FormTemplate,
        transport: Transport,
        settings: FormbotSettings,
        *,
        plugins: PluginManager | None = None,
    ) -> FormBot:
        return cls(
            template,
            transport,
            bot=settings.bot,
            database=settings.database,
            webhook=settings.webhook,
            base_dir=settings.base_dir,
            plugins=plugins,
        )

    def handle(self, event: InboundEvent) -> None:
        self.engine.handle(event)

    def stats(self) -> dict[str, int]:
        """Dispatcher counters (all zero when the webhook is off)."""
        if self.dispatcher is None:
            return {"delivered": 0, "failed": 0, "dropped": 0}
        return {
            "delivered": self.dispatcher.delivered,
            "failed": self.dispatcher.failed,
            "dropped": self.dispatcher.dropped,
        }

    def close(self) -> None:
        self.engine.close()
        if self.dispatcher is not None:
            self.dispatcher.shutdown()
        self.storage.close()

    def __enter__(self) -> FormBot:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
