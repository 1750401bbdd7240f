"""Field types and rendering enums."""

from __future__ import annotations

from enum import StrEnum


class FieldType(StrEnum):
    """The kinds of question a form field can ask."""

    TEXT = "text"
    NUMBER = "number"
    EMAIL = "email"
    SELECT = "select"
    FILE = "file"
    PHOTO = "photo"
    VIDEO = "video"
    DOCUMENT = "document"


class ParseMode(StrEnum):
    """Markup applied by the transport when rendering a message."""

    PLAIN = ""
    MARKDOWN = "Markdown"
    HTML = "HTML"


# Field types whose prompt is a media asset loaded from ``location``.
MEDIA_TYPES: frozenset[FieldType] = frozenset(
    {FieldType.PHOTO, FieldType.VIDEO, FieldType.DOCUMENT}
)

# Field types whose answer is a transferred asset rather than typed text.
FILE_TYPES: frozenset[FieldType] = frozenset({FieldType.FILE}) | MEDIA_TYPES

# Callback payloads reserved by the engine.
SKIP = "skip"
SUBMIT = "submit"
UPLOAD_ANOTHER = "upload_another"
FINISH_UPLOADING = "finish_uploading"
MODIFY_PREFIX = "modify_"
