"""Shared pytest fixtures and test helpers for formbot tests."""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from formbot.config.models import BotConfig
from formbot.domain.template import FormTemplate, parse_template
from formbot.services.form_engine import FormEngine
from formbot.services.session_store import SessionStore
from formbot.transport.base import RecordingTransport


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run in an empty temp directory with no config discovery leaking in."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("FORMBOT_CONFIG", raising=False)
    for name in ("FORMBOT_DATABASE__ENABLE", "FORMBOT_WEBHOOK__ENABLED", "FORMBOT_VERBOSE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def quiet_bot() -> BotConfig:
    """Bot settings with inactivity expiry disabled."""
    return BotConfig(session_timeout=0)


@pytest.fixture
def make_engine(
    transport: RecordingTransport, quiet_bot: BotConfig
) -> Iterator[Any]:
    """Factory building a FormEngine over the recording transport."""
    engines: list[FormEngine] = []

    def _make(template: FormTemplate, **kwargs: Any) -> FormEngine:
        kwargs.setdefault("bot", quiet_bot)
        engine = FormEngine(template, transport, **kwargs)
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.close()


@pytest.fixture
def store() -> Iterator[SessionStore]:
    s = SessionStore()
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Shared test helpers
# ---------------------------------------------------------------------------


def form_data(*fields: dict[str, Any], **overrides: Any) -> dict[str, Any]:
    """A minimal valid form document with *fields*."""
    data: dict[str, Any] = {
        "form_name": "signup",
        "table_name": "signups",
        "review_enabled": False,
        "fields": list(fields) or [{"name": "name", "label": "Name", "type": "text"}],
    }
    data.update(overrides)
    return data


def build_template(*fields: dict[str, Any], **overrides: Any) -> FormTemplate:
    return parse_template(form_data(*fields, **overrides))


def write_form(directory: Path, data: dict[str, Any], name: str = "form.json") -> Path:
    path = directory / name
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll *predicate* until it holds or *timeout* seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
