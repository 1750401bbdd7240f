"""Inbound chat events and the outbound submission snapshot."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class CommandName(StrEnum):
    """Slash commands understood by the engine."""

    START = "start"
    END = "end"
    HELP = "help"


@dataclass(frozen=True, slots=True)
class Command:
    """A slash command such as ``/start``."""

    identity: str
    name: CommandName


@dataclass(frozen=True, slots=True)
class TextInput:
    """Free text typed by the user."""

    identity: str
    text: str


@dataclass(frozen=True, slots=True)
class ButtonPress:
    """An inline button selection carrying its callback data."""

    identity: str
    data: str


@dataclass(frozen=True, slots=True)
class FileUpload:
    """An asset the transport has already received; *url* locates it."""

    identity: str
    url: str


InboundEvent = Command | TextInput | ButtonPress | FileUpload


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class SubmissionEvent(BaseModel):
    """Immutable snapshot of one completed form.

    Built once at submit time from a copy of the session's answers; it
    shares nothing with the live session afterwards.
    """

    model_config = {"frozen": True}

    form_name: str
    data: dict[str, str]
    submitted_at: str = Field(default_factory=_now_iso)

    @classmethod
    def from_answers(
        cls,
        form_name: str,
        field_names: list[str],
        answers: Mapping[str, str],
    ) -> SubmissionEvent:
        """Order *answers* by *field_names*; missing answers become ``""``."""
        return cls(form_name=form_name, data={n: answers.get(n, "") for n in field_names})

    def to_payload(self) -> dict[str, Any]:
        """The JSON body posted to the notification endpoint."""
        return {"event": self.form_name, "data": dict(self.data)}
