"""Console transport: renders the conversation in a terminal.

Used by ``formbot run``: text messages print as bot lines, button sets
print as ``!data`` hints the user can type back, and media messages
print their file name and caption.
"""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.text import Text

from formbot.domain.events import (
    ButtonPress,
    Command,
    CommandName,
    FileUpload,
    InboundEvent,
    TextInput,
)
from formbot.domain.types import ParseMode
from formbot.errors import TransportError
from formbot.output.console import html_to_text
from formbot.transport.base import MediaMessage, OutboundMessage, TextMessage


def _body(text: str, parse_mode: ParseMode) -> Text:
    if parse_mode is ParseMode.HTML:
        return html_to_text(text)
    return Text(text)


class ConsoleTransport:
    """Print outbound messages to a rich Console."""

    def __init__(self, console: Console) -> None:
        self._console = console

    def send(self, message: OutboundMessage) -> None:
        try:
            if isinstance(message, MediaMessage):
                self._send_media(message)
            else:
                self._send_text(message)
        except OSError as exc:
            msg = f"console write failed: {exc}"
            raise TransportError(msg) from exc

    def _send_text(self, message: TextMessage) -> None:
        line = Text("bot> ", style="bot.prompt")
        line.append_text(_body(message.text, message.parse_mode))
        self._console.print(line)
        for button in message.buttons:
            hint = Text("  ")
            hint.append(f"!{button.data}", style="bot.data")
            hint.append("  ")
            hint.append(button.text, style="bot.button")
            self._console.print(hint)

    def _send_media(self, message: MediaMessage) -> None:
        path = Path(message.location)
        if not path.is_file():
            msg = f"failed to load {message.kind} from location: {message.location}"
            raise TransportError(msg)
        line = Text("bot> ", style="bot.prompt")
        line.append(f"[{message.kind}] {path.name}", style="bot.media")
        self._console.print(line)
        if message.caption:
            caption = _body(message.caption, message.parse_mode)
            self._console.print(Text("     ").append_text(caption))


def parse_console_line(identity: str, line: str) -> InboundEvent:
    """Turn one typed line into an inbound event.

    ``/start``, ``/end`` and ``/help`` are commands (other slash words are
    plain text), ``!data`` presses the button carrying *data*, and
    ``@location`` uploads the file at *location*.
    """
    text = line.strip()
    if text.startswith("/"):
        word = text[1:].split(maxsplit=1)[0].lower() if len(text) > 1 else ""
        try:
            return Command(identity, CommandName(word))
        except ValueError:
            return TextInput(identity, text)
    if text.startswith("!") and len(text) > 1:
        return ButtonPress(identity, text[1:])
    if text.startswith("@") and len(text) > 1:
        return FileUpload(identity, text[1:])
    return TextInput(identity, text)
