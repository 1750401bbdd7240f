"""Rich Console factory and theme for formbot terminal output."""

from __future__ import annotations

import html
import re
from io import StringIO
from typing import IO

from rich.console import Console
from rich.text import Text
from rich.theme import Theme

FORMBOT_THEME = Theme(
    {
        "bot.media": "cyan",
        "bot.button": "bold magenta",
        "bot.data": "dim",
        "bot.prompt": "bold green",
        "fb.ok": "bold green",
        "fb.error": "bold red",
        "fb.op": "bold cyan",
        "fb.key": "dim",
    }
)

_HTML_TAG_RE = re.compile(r"<[^>]+>")


def create_console(
    *,
    file: IO[str] | None = None,
    no_color: bool = False,
    width: int | None = None,
) -> Console:
    """Create a Console writing to *file* (a StringIO buffer when None).

    Args:
        file: Destination stream, e.g. ``sys.stdout`` for live output.
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=file if file is not None else StringIO(),
        theme=FORMBOT_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 100,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def html_to_text(text: str) -> Text:
    """Render the small HTML subset used in messages (``<b>``) as rich Text.

    Other tags are dropped and entities are unescaped. Rich markup is never
    parsed, so user-supplied answers cannot break rendering.
    """
    result = Text()
    bold = False
    pos = 0
    for match in _HTML_TAG_RE.finditer(text):
        result.append(html.unescape(text[pos : match.start()]), style="bold" if bold else None)
        tag = match.group().lower()
        if tag == "<b>":
            bold = True
        elif tag == "</b>":
            bold = False
        pos = match.end()
    result.append(html.unescape(text[pos:]), style="bold" if bold else None)
    return result
