"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, formbot.toml only contains
overrides. A console run needs no config file at all; persistence and
the webhook are both off until enabled.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal
from urllib.parse import quote

from pydantic import BaseModel, Field

from formbot.errors import ConfigError


class BotConfig(BaseModel):
    """[bot] section."""

    model_config = {"frozen": True}

    session_timeout: float = 1800.0
    help_text: str = (
        "Welcome to the bot! Here are the available commands:\n"
        "/start - Start a new session\n"
        "/end - End the current session\n"
        "/help - Show this help message"
    )
    end_text: str = "Your session has been ended. Thank you for using the bot."
    send_failure_text: str = "Failed to send the content. Please try again later."


class SqliteConfig(BaseModel):
    """[database.sqlite] section."""

    model_config = {"frozen": True}

    path: str = "formbot.db"


class ServerConfig(BaseModel):
    """[database.postgres] / [database.mysql] sections."""

    model_config = {"frozen": True}

    username: str = ""
    password: str = ""
    host: str = ""
    port: int | None = None
    database: str = ""
    dsn: str = ""


_SERVER_DRIVERS = {
    "postgres": "postgresql+psycopg",
    "mysql": "mysql+pymysql",
}


class DatabaseConfig(BaseModel):
    """[database] section."""

    model_config = {"frozen": True}

    enable: bool = False
    use_adaptor: str = "sqlite"
    dsn: str = ""
    connect_timeout: float = 10.0
    sqlite: SqliteConfig = Field(default_factory=SqliteConfig)
    postgres: ServerConfig = Field(default_factory=ServerConfig)
    mysql: ServerConfig = Field(default_factory=ServerConfig)

    def resolve_url(self, base_dir: Path | None = None) -> str:
        """Build the SQLAlchemy URL for the selected adaptor.

        An explicit top-level or per-dialect ``dsn`` wins; otherwise the URL
        is assembled from the dialect's fields. Relative SQLite paths are
        resolved against *base_dir*.

        Raises:
            ConfigError: required connection fields are missing.
        """
        if self.dsn:
            return self.dsn

        if self.use_adaptor == "sqlite":
            path = Path(self.sqlite.path)
            if not path.is_absolute() and base_dir is not None:
                path = base_dir / path
            return f"sqlite:///{path}"

        if self.use_adaptor in _SERVER_DRIVERS:
            server: ServerConfig = getattr(self, self.use_adaptor)
            if server.dsn:
                return server.dsn
            missing = [
                name
                for name in ("username", "password", "host", "database")
                if not getattr(server, name)
            ]
            if missing:
                msg = f"{self.use_adaptor} config error: missing {', '.join(missing)}"
                raise ConfigError(msg)
            port = f":{server.port}" if server.port else ""
            return (
                f"{_SERVER_DRIVERS[self.use_adaptor]}://"
                f"{quote(server.username, safe='')}:{quote(server.password, safe='')}"
                f"@{server.host}{port}/{server.database}"
            )

        msg = f"adaptor '{self.use_adaptor}' needs an explicit database.dsn"
        raise ConfigError(msg)


class WebhookAuthConfig(BaseModel):
    """[webhook.auth] section."""

    model_config = {"frozen": True}

    type: Literal["none", "bearer", "basic"] = "none"
    token: str = ""
    username: str = ""
    password: str = ""


class WebhookConfig(BaseModel):
    """[webhook] section.

    ``overflow`` decides what a full queue does to a submitting session:
    ``drop`` rejects the event at once with a logged error, ``block`` waits
    up to ``enqueue_timeout`` seconds for a free slot and then drops.
    """

    model_config = {"frozen": True}

    enabled: bool = False
    url: str = ""
    workers: int = Field(default=2, ge=1)
    queue_size: int = Field(default=100, ge=1)
    timeout: float = Field(default=10.0, gt=0)
    overflow: Literal["drop", "block"] = "drop"
    enqueue_timeout: float = Field(default=5.0, ge=0)
    auth: WebhookAuthConfig = Field(default_factory=WebhookAuthConfig)


class FormbotConfig(BaseModel):
    """Root configuration composing all sections."""

    model_config = {"frozen": True}

    bot: BotConfig = Field(default_factory=BotConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
