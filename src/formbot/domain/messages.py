"""User-facing message templates with code-baked defaults.

A form definition may override any message; empty overrides fall back to
the default. Messages use printf-style placeholders (``%s``, ``%d``) and
the number each key expects is fixed in :data:`PLACEHOLDER_COUNTS`, which
:func:`check_placeholders` compares against at template load time.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import BaseModel, model_validator

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"%[sd]")

# Expected substitution count per message key. Keys absent here take none.
PLACEHOLDER_COUNTS: dict[str, int] = {
    "modify": 1,
    "modify_button": 1,
    "required_file": 1,
    "required_select": 2,
    "required_input": 1,
    "invalid_max_number": 2,
    "invalid_min_number": 2,
    "invalid_number": 1,
    "invalid_format": 1,
    "validation_error": 1,
    "invalid_max_length": 2,
    "invalid_min_length": 2,
}


class Messages(BaseModel):
    """Every piece of UI text the engine sends."""

    model_config = {"frozen": True, "extra": "forbid"}

    submit: str = "🎉 Thank you for submitting the form! 🎉"
    submit_button: str = "✅ Submit"
    skip_button: str = "⏭️ Skip"
    modify: str = "Please enter a new value for %s:"
    modify_button: str = "✏️ Modify %s"
    choose_option: str = "Choose an option:"
    review: str = "📝 <b>Review Your Inputs:</b>"
    not_provided: str = "Not provided"
    file_upload_success: str = "File uploaded successfully!"
    upload_another: str = "Please upload another file"
    upload_another_button: str = "Upload another file"
    finish_upload_button: str = "Finish uploading"
    finish_upload: str = "Do you want to upload another file or finish uploading?"
    required_file: str = "Oops! A file is required for %s. Please upload a file."
    required_select: str = (
        "Oops! A selection is required. The input for %s must be one of the "
        "following options: %s. Please choose one."
    )
    required_input: str = "Oops! This %s is required. Please provide a value."
    invalid_email: str = (
        "Oops! This doesn't look like a valid email address. Please check and try again."
    )
    invalid_max_number: str = (
        "Oops! The value for %s must be at most %d. Please provide a valid number."
    )
    invalid_min_number: str = (
        "Oops! The value for %s must be at least %d. Please provide a valid number."
    )
    invalid_number: str = "Oops! Please enter a valid number for %s."
    invalid_format: str = (
        "Oops! The input for %s doesn't match the required format. Please make sure it's correct."
    )
    validation_error: str = (
        "Oops! Something went wrong while validating your input for %s. Please try again."
    )
    invalid_max_length: str = (
        "Oops! This input for %s is too long. Please provide no more than %d characters."
    )
    invalid_min_length: str = (
        "Oops! This input for %s is too short. Please provide at least %d characters."
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_empty_overrides(cls, data: Any) -> Any:
        """Treat empty strings and nulls as 'use the default'."""
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v not in ("", None)}
        return data

    def render(self, key: str, *args: Any) -> str:
        """Substitute *args* into the message named *key*.

        A template whose placeholders do not match *args* (possible only
        for messages built outside a loaded template) is returned with the
        arguments appended instead of raising.
        """
        template: str = getattr(self, key)
        if not args:
            return template
        try:
            return template % args
        except (TypeError, ValueError):
            logger.warning("Message %r does not accept %d argument(s)", key, len(args))
            return " ".join([template, *(str(a) for a in args)])


def count_placeholders(text: str) -> int:
    """Number of ``%s``/``%d`` placeholders in *text*."""
    return len(_PLACEHOLDER_RE.findall(text))


def check_placeholders(messages: Messages) -> list[str]:
    """Compare each message against its expected placeholder count.

    Returns one problem string per mismatching key.
    """
    problems: list[str] = []
    for key in Messages.model_fields:
        expected = PLACEHOLDER_COUNTS.get(key, 0)
        found = count_placeholders(getattr(messages, key))
        if found != expected:
            problems.append(
                f"Message '{key}' expects {expected} placeholder(s), but found {found}."
            )
    return problems
