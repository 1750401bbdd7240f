"""Field validators: pure functions from raw input to an outcome.

Each field type has one validator. All of them take the field spec (which
carries the rule-set and the required/skippable flags), the raw input, and
the template's messages, and return either :class:`Accepted` with the
normalized value or :class:`Rejected` with a user message plus a
diagnostic reason. Nothing here touches shared state, so validators are
safe to call from any number of sessions at once.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Callable
from dataclasses import dataclass

from formbot.domain.messages import Messages
from formbot.domain.template import FieldSpec
from formbot.domain.types import FILE_TYPES, FieldType

EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}$")
_INTEGER_RE = re.compile(r"^[+-]?[0-9]+$")


@dataclass(frozen=True, slots=True)
class Accepted:
    """The input passed; *value* is what gets stored."""

    value: str


@dataclass(frozen=True, slots=True)
class Rejected:
    """The input failed.

    ``user_message`` goes back to the user; ``reason`` is for logs only.
    """

    user_message: str
    reason: str


ValidationOutcome = Accepted | Rejected


@functools.lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def _validate_text(spec: FieldSpec, value: str, messages: Messages) -> ValidationOutcome:
    rules = spec.validation
    label = spec.display_name

    if len(value) < rules.min_length:
        return Rejected(
            messages.render("invalid_min_length", label, rules.min_length),
            f"{spec.name}: input too short, expected at least {rules.min_length} "
            f"characters, got {len(value)}",
        )
    if rules.max_length > 0 and len(value) > rules.max_length:
        return Rejected(
            messages.render("invalid_max_length", label, rules.max_length),
            f"{spec.name}: input too long, expected at most {rules.max_length} "
            f"characters, got {len(value)}",
        )

    if rules.regex:
        try:
            pattern = _compile(rules.regex)
        except re.error as exc:
            return Rejected(
                messages.render("validation_error", label),
                f"{spec.name}: regex {rules.regex!r} failed to compile: {exc}",
            )
        if pattern.search(value) is None:
            return Rejected(
                messages.render("invalid_format", label),
                f"{spec.name}: input does not match regex {rules.regex!r}",
            )

    return Accepted(value)


def _validate_number(spec: FieldSpec, value: str, messages: Messages) -> ValidationOutcome:
    rules = spec.validation
    label = spec.display_name

    text = value.strip()
    if _INTEGER_RE.match(text) is None:
        return Rejected(
            messages.render("invalid_number", label),
            f"{spec.name}: {value!r} is not an integer",
        )
    number = int(text)

    if rules.min is not None and number < rules.min:
        return Rejected(
            messages.render("invalid_min_number", label, rules.min),
            f"{spec.name}: {number} is less than the minimum {rules.min}",
        )
    if rules.max is not None and number > rules.max:
        return Rejected(
            messages.render("invalid_max_number", label, rules.max),
            f"{spec.name}: {number} exceeds the maximum {rules.max}",
        )

    return Accepted(str(number))


def _validate_email(spec: FieldSpec, value: str, messages: Messages) -> ValidationOutcome:
    if not value.isascii() or EMAIL_RE.fullmatch(value) is None:
        return Rejected(
            messages.render("invalid_email"),
            f"{spec.name}: value does not look like an email address",
        )
    return Accepted(value)


def _validate_select(spec: FieldSpec, value: str, messages: Messages) -> ValidationOutcome:
    if value in spec.options:
        return Accepted(value)
    allowed = ", ".join(spec.options)
    return Rejected(
        messages.render("required_select", spec.display_name, allowed),
        f"{spec.name}: invalid option {value!r}, expected one of: {allowed}",
    )


def _validate_asset(spec: FieldSpec, value: str, messages: Messages) -> ValidationOutcome:
    # Empty required values are caught before dispatch; the transport owns
    # the asset itself.
    return Accepted(value)


_VALIDATORS: dict[FieldType, Callable[[FieldSpec, str, Messages], ValidationOutcome]] = {
    FieldType.TEXT: _validate_text,
    FieldType.NUMBER: _validate_number,
    FieldType.EMAIL: _validate_email,
    FieldType.SELECT: _validate_select,
    FieldType.FILE: _validate_asset,
    FieldType.PHOTO: _validate_asset,
    FieldType.VIDEO: _validate_asset,
    FieldType.DOCUMENT: _validate_asset,
}


def validate(spec: FieldSpec, raw: str, messages: Messages | None = None) -> ValidationOutcome:
    """Validate *raw* against *spec*.

    Skippable and empty is always accepted as ``""``, and required and
    empty is always rejected. Any other empty input goes through the type
    validator like a non-empty one, so an optional field with a minimum
    length or a fixed option list still rejects it.
    """
    messages = messages or Messages()

    if raw == "" and spec.skippable:
        return Accepted("")
    if raw == "" and spec.required:
        if spec.type in FILE_TYPES:
            return Rejected(
                messages.render("required_file", spec.display_name),
                f"{spec.name}: file is required but was not provided",
            )
        return Rejected(
            messages.render("required_input", spec.display_name),
            f"{spec.name}: input is required but was not provided",
        )

    return _VALIDATORS[spec.type](spec, raw, messages)
