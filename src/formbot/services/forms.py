"""Form-level operations behind ``formbot validate`` and ``formbot migrate``."""

from __future__ import annotations

import logging
from pathlib import Path

from formbot.config.models import DatabaseConfig
from formbot.domain.template import FormTemplate, load_template
from formbot.errors import ConfigError, StorageError, TemplateError
from formbot.infrastructure.storage import Storage
from formbot.services.result import ErrorCode, ServiceResult

logger = logging.getLogger(__name__)


def _load(op: str, path: Path) -> FormTemplate | ServiceResult:
    try:
        return load_template(path)
    except TemplateError as exc:
        return ServiceResult.failure(
            op,
            ErrorCode.INVALID_FORM,
            f"{path} is not a valid form definition",
            problems=exc.problems,
        )


def _summary(template: FormTemplate) -> dict[str, object]:
    return {
        "form": template.form_name,
        "table": template.table_name,
        "fields": len(template),
        "review": template.review_enabled,
        "db": template.db or "none",
    }


def validate_form(path: Path) -> ServiceResult:
    """Load and check the form at *path*, including message placeholders."""
    loaded = _load("validate", path)
    if isinstance(loaded, ServiceResult):
        return loaded
    return ServiceResult(ok=True, op="validate", data=_summary(loaded))


def migrate_form(
    path: Path,
    database: DatabaseConfig,
    *,
    base_dir: Path | None = None,
) -> ServiceResult:
    """Create the form's submission table with the configured adaptor.

    Running it again against an existing table succeeds with
    ``created: False`` and a warning.
    """
    loaded = _load("migrate", path)
    if isinstance(loaded, ServiceResult):
        return loaded

    if not database.enable:
        return ServiceResult.failure(
            "migrate",
            ErrorCode.PERSISTENCE_DISABLED,
            "database persistence is disabled (set database.enable = true)",
        )

    storage = Storage(database, base_dir=base_dir)
    try:
        storage.check_template(loaded)
        storage.open()
        created = storage.migrate(loaded)
    except ConfigError as exc:
        return ServiceResult.failure("migrate", ErrorCode.CONFIG_ERROR, str(exc))
    except StorageError as exc:
        logger.debug("Migration of %s failed", path, exc_info=True)
        return ServiceResult.failure("migrate", ErrorCode.STORAGE_ERROR, str(exc))
    finally:
        storage.close()

    warnings = [] if created else [f"table '{loaded.table_name}' already exists; nothing created"]
    return ServiceResult(
        ok=True,
        op="migrate",
        data={
            "table": loaded.table_name,
            "adaptor": database.use_adaptor,
            "columns": [spec.name for spec, _ in loaded.columns()],
            "created": created,
        },
        warnings=warnings,
    )
