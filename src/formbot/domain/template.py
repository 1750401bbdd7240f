"""Form template: the immutable, shared definition of a form.

A template is parsed from a JSON document once per process and shared by
every session. All models are frozen and all sequences are tuples, so no
code path can write a user's answer back into the template.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from formbot.domain.db_types import resolve_db_type
from formbot.domain.messages import Messages, check_placeholders
from formbot.domain.types import MEDIA_TYPES, FieldType, ParseMode
from formbot.errors import TemplateError

_BUTTON_DATA_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


class Button(BaseModel):
    """An inline button offered with a field prompt."""

    model_config = {"frozen": True}

    text: str = ""
    data: str = ""


class ValidationRules(BaseModel):
    """Per-field validation rule-set.

    ``min_length``/``max_length`` of 0 mean unchecked. ``min``/``max`` are
    numeric bounds for number fields; ``None`` means unbounded, so a bound
    of 0 is a real bound.
    """

    model_config = {"frozen": True}

    min_length: int = 0
    max_length: int = 0
    regex: str = ""
    min: int | None = None
    max: int | None = None


class FieldSpec(BaseModel):
    """One question of the form."""

    model_config = {"frozen": True}

    name: str
    label: str = ""
    type: FieldType = FieldType.TEXT
    required: bool = False
    skippable: bool = False
    description: str = ""
    formatting: ParseMode = ParseMode.PLAIN
    location: str = ""
    db_type: str = ""
    buttons: tuple[Button, ...] = ()
    options: tuple[str, ...] = ()
    validation: ValidationRules = Field(default_factory=ValidationRules)

    @property
    def display_name(self) -> str:
        """Label when present, else the field name."""
        return self.label or self.name


class FormTemplate(BaseModel):
    """The whole form: metadata, UI text, and ordered fields."""

    model_config = {"frozen": True}

    form_name: str = ""
    table_name: str = ""
    review_enabled: bool = False
    db: str = ""
    messages: Messages = Field(default_factory=Messages)
    fields: tuple[FieldSpec, ...] = ()

    def __len__(self) -> int:
        return len(self.fields)

    def field_named(self, name: str) -> FieldSpec | None:
        """Return the field called *name*, or None."""
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def columns(self) -> list[tuple[FieldSpec, str]]:
        """Fields that persist, paired with their dialect column type."""
        if not self.db:
            return []
        return [(f, resolve_db_type(self.db, f.db_type)) for f in self.fields if f.db_type]


# ---------------------------------------------------------------------------
# Structural checks
# ---------------------------------------------------------------------------


def _check_field(spec: FieldSpec) -> list[str]:
    problems: list[str] = []

    if spec.type in MEDIA_TYPES:
        if not spec.location:
            problems.append(f"field '{spec.name}' location is empty")
        elif not Path(spec.location).is_file():
            problems.append(f"field '{spec.name}' has a missing media file: {spec.location}")

    for button in spec.buttons:
        if not button.text or not button.data:
            problems.append(f"button in field '{spec.name}' must have both text and data")
        elif not _BUTTON_DATA_RE.match(button.data):
            problems.append(
                f"button data '{button.data}' in field '{spec.name}' contains invalid characters"
            )

    if spec.type is FieldType.SELECT and not spec.options:
        problems.append(f"select field '{spec.name}' must have options")

    rules = spec.validation
    if rules.min is not None and rules.max is not None and rules.min > rules.max:
        problems.append(f"field '{spec.name}' has invalid min/max constraints")
    if rules.max_length > 0 and rules.min_length > rules.max_length:
        problems.append(f"field '{spec.name}' has invalid min/max length constraints")
    if rules.min_length < 0 or rules.max_length < 0:
        problems.append(f"field '{spec.name}' has negative length constraints")

    if rules.regex:
        try:
            re.compile(rules.regex)
        except re.error as exc:
            problems.append(f"field '{spec.name}' has an invalid regex pattern: {exc}")

    return problems


def check_template(template: FormTemplate) -> list[str]:
    """Collect every structural problem in *template* (empty list = valid)."""
    problems: list[str] = []

    if not template.form_name:
        problems.append("form_name cannot be empty")
    if not template.table_name:
        problems.append("table_name cannot be empty")
    if not template.fields:
        problems.append("form must declare at least one field")

    seen: set[str] = set()
    for spec in template.fields:
        if not spec.name:
            problems.append("every field needs a name")
        elif spec.name in seen:
            problems.append(f"duplicate field name '{spec.name}'")
        seen.add(spec.name)
        problems.extend(_check_field(spec))

    for spec in template.fields:
        if not spec.db_type:
            continue
        if not template.db:
            problems.append(f"field '{spec.name}' declares db_type but the form has no db")
            continue
        try:
            resolve_db_type(template.db, spec.db_type)
        except ValueError as exc:
            problems.append(f"DB validation failed for field '{spec.name}': {exc}")

    problems.extend(check_placeholders(template.messages))
    return problems


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _resolve_locations(data: dict[str, Any], base_dir: Path) -> None:
    """Rewrite relative media locations against the form file's directory."""
    for raw_field in data.get("fields") or []:
        if not isinstance(raw_field, dict):
            continue
        location = raw_field.get("location")
        if location and not Path(location).is_absolute():
            raw_field["location"] = str(base_dir / location)


def _format_pydantic_errors(exc: ValidationError) -> list[str]:
    problems: list[str] = []
    for err in exc.errors():
        where = ".".join(str(part) for part in err["loc"]) or "<root>"
        problems.append(f"{where}: {err['msg']}")
    return problems


def parse_template(data: dict[str, Any]) -> FormTemplate:
    """Build and check a template from an already-decoded document.

    Raises:
        TemplateError: with every problem found.
    """
    try:
        template = FormTemplate.model_validate(data)
    except ValidationError as exc:
        raise TemplateError(_format_pydantic_errors(exc)) from exc

    problems = check_template(template)
    if problems:
        raise TemplateError(problems)
    return template


def load_template(path: Path) -> FormTemplate:
    """Load, check, and freeze the form definition at *path*.

    Relative media locations are resolved against the file's directory.

    Raises:
        TemplateError: unreadable file, invalid JSON, or structural problems.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"failed to read form definition {path}: {exc}"
        raise TemplateError([msg]) from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        msg = f"failed to parse form definition {path}: {exc}"
        raise TemplateError([msg]) from exc

    if not isinstance(data, dict):
        raise TemplateError([f"form definition {path} must be a JSON object"])

    _resolve_locations(data, path.resolve().parent)
    return parse_template(data)
