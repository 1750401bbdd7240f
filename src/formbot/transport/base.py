"""Outbound message types and the transport protocol.

The engine never talks to a chat network directly. It builds
:class:`TextMessage` / :class:`MediaMessage` values and hands them to a
:class:`Transport`, which raises :class:`~formbot.errors.TransportError`
when delivery fails.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol

from formbot.domain.template import Button
from formbot.domain.types import FieldType, ParseMode


@dataclass(frozen=True, slots=True)
class TextMessage:
    """Text, optionally with an inline button set."""

    identity: str
    text: str
    parse_mode: ParseMode = ParseMode.PLAIN
    buttons: tuple[Button, ...] = ()


@dataclass(frozen=True, slots=True)
class MediaMessage:
    """A photo, video, or document read from *location*."""

    identity: str
    kind: FieldType
    location: str
    caption: str = ""
    parse_mode: ParseMode = ParseMode.PLAIN


OutboundMessage = TextMessage | MediaMessage


class Transport(Protocol):
    """Anything that can deliver an outbound message to a user."""

    def send(self, message: OutboundMessage) -> None:
        """Deliver *message*; raise TransportError on failure."""
        ...


class RecordingTransport:
    """Transport that keeps every message in memory. Thread-safe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.messages: list[OutboundMessage] = []

    def send(self, message: OutboundMessage) -> None:
        with self._lock:
            self.messages.append(message)

    def for_identity(self, identity: str) -> list[OutboundMessage]:
        """Messages sent to *identity*, in send order."""
        with self._lock:
            return [m for m in self.messages if m.identity == identity]

    def texts(self, identity: str) -> list[str]:
        """Text bodies (and media captions) sent to *identity*."""
        return [
            m.text if isinstance(m, TextMessage) else m.caption
            for m in self.for_identity(identity)
        ]

    def last(self, identity: str) -> OutboundMessage | None:
        sent = self.for_identity(identity)
        return sent[-1] if sent else None

    def clear(self) -> None:
        with self._lock:
            self.messages.clear()
