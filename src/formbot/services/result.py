"""Outcomes of the form operations behind the CLI: validate, migrate, and run.

Services hand back a :class:`ServiceResult` instead of printing.
``AppContext.emit`` renders it as a rich summary or as JSON, and a failed
result ends the command with exit status 1.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(StrEnum):
    """Stable failure codes, as seen by ``--json`` consumers."""

    INVALID_FORM = "INVALID_FORM"
    CONFIG_ERROR = "CONFIG_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    PERSISTENCE_DISABLED = "PERSISTENCE_DISABLED"


class ServiceError(BaseModel):
    """Why a form operation failed.

    ``problems`` holds every issue found in a form definition, in the order
    they were found. ``detail`` carries extra context that is only printed
    with ``--verbose``.
    """

    model_config = {"frozen": True}

    code: ErrorCode
    message: str
    problems: list[str] = Field(default_factory=list)
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Outcome of ``validate``, ``migrate`` or ``run``.

    Attributes:
        ok: Whether the operation succeeded.
        op: The CLI operation, ``"validate"``, ``"migrate"`` or ``"run"``.
        data: Summary on success: the form, its table and columns, or the
            session counters of a console run.
        warnings: Findings that did not stop the operation, such as a
            table that already existed.
        error: Set when ``ok`` is False.
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None

    @classmethod
    def failure(
        cls,
        op: str,
        code: ErrorCode,
        message: str,
        *,
        problems: list[str] | None = None,
        **detail: Any,
    ) -> ServiceResult:
        error = ServiceError(code=code, message=message, problems=problems or [], detail=detail)
        return cls(ok=False, op=op, error=error)
