"""Persistence capability: adaptor contract, registry, and facade.

An adaptor implements open/migrate/insert for one storage engine and is
registered under the name used by ``database.use_adaptor``. The
:class:`Storage` facade is what the rest of the program holds: when
persistence is disabled every call is a successful no-op.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from formbot.errors import ConfigError, StorageError

if TYPE_CHECKING:
    from formbot.config.models import DatabaseConfig
    from formbot.domain.template import FieldSpec, FormTemplate

logger = logging.getLogger(__name__)


class StorageAdaptor(ABC):
    """One storage engine behind the open/migrate/insert capability."""

    name: ClassVar[str] = ""

    @abstractmethod
    def open(self, config: DatabaseConfig, *, base_dir: Path | None = None) -> None:
        """Connect. Raise StorageError when the engine is unreachable."""

    @abstractmethod
    def migrate(self, template: FormTemplate) -> bool:
        """Create the template's table. Return False if it already existed."""

    @abstractmethod
    def insert(
        self,
        table_name: str,
        fields: Sequence[FieldSpec],
        answers: Mapping[str, str],
    ) -> str:
        """Insert one submission and return the new row id."""

    def close(self) -> None:  # noqa: B027
        """Release connections. Default: nothing to release."""


ADAPTOR_REGISTRY: dict[str, type[StorageAdaptor]] = {}


def register_adaptor(name: str, adaptor_cls: type[StorageAdaptor]) -> None:
    """Make *adaptor_cls* selectable as ``database.use_adaptor = name``.

    Raises:
        TypeError: *adaptor_cls* does not extend StorageAdaptor.
        ValueError: empty name, or the name is taken by another class.
    """
    normalized = name.strip()
    if not normalized:
        msg = "Adaptor name must not be empty"
        raise ValueError(msg)
    if not (isinstance(adaptor_cls, type) and issubclass(adaptor_cls, StorageAdaptor)):
        msg = f"Adaptor {normalized!r} must extend StorageAdaptor"
        raise TypeError(msg)

    existing = ADAPTOR_REGISTRY.get(normalized)
    if existing is not None and existing is not adaptor_cls:
        msg = f"Adaptor {normalized!r} is already registered"
        raise ValueError(msg)
    ADAPTOR_REGISTRY[normalized] = adaptor_cls


def get_adaptor(name: str) -> type[StorageAdaptor]:
    """Look up a registered adaptor class.

    Raises:
        StorageError: nothing is registered under *name*.
    """
    try:
        return ADAPTOR_REGISTRY[name]
    except KeyError:
        available = ", ".join(sorted(ADAPTOR_REGISTRY)) or "none"
        msg = f"{name} adaptor is not available (registered: {available})"
        raise StorageError(msg) from None


class Storage:
    """The persistence capability as seen by the engine and the CLI.

    Holds at most one open adaptor. With ``enable = false`` nothing is
    opened and every operation succeeds without doing anything.
    """

    def __init__(self, config: DatabaseConfig, *, base_dir: Path | None = None) -> None:
        self._config = config
        self._base_dir = base_dir
        self._adaptor: StorageAdaptor | None = None

    @property
    def enabled(self) -> bool:
        return self._config.enable

    @property
    def adaptor(self) -> StorageAdaptor | None:
        return self._adaptor

    def check_template(self, template: FormTemplate) -> None:
        """Reject a form whose ``db`` names a different dialect than the adaptor.

        Raises:
            ConfigError: persistence is enabled and the dialects disagree.
        """
        if not self.enabled or not template.db:
            return
        if template.db != self._config.use_adaptor:
            msg = (
                f"form '{template.form_name}' declares db '{template.db}' "
                f"but database.use_adaptor is '{self._config.use_adaptor}'"
            )
            raise ConfigError(msg)

    def open(self) -> None:
        """Select and connect the configured adaptor (no-op when disabled)."""
        if not self.enabled or self._adaptor is not None:
            return
        adaptor = get_adaptor(self._config.use_adaptor)()
        adaptor.open(self._config, base_dir=self._base_dir)
        self._adaptor = adaptor
        logger.debug("Opened %s storage adaptor", self._config.use_adaptor)

    def migrate(self, template: FormTemplate) -> bool:
        """Create the table for *template*; False if disabled or already present."""
        if not self.enabled:
            return False
        return self._require().migrate(template)

    def insert(
        self,
        table_name: str,
        fields: Sequence[FieldSpec],
        answers: Mapping[str, str],
    ) -> str | None:
        """Persist one submission; None when disabled."""
        if not self.enabled:
            return None
        return self._require().insert(table_name, fields, answers)

    def close(self) -> None:
        if self._adaptor is not None:
            self._adaptor.close()
            self._adaptor = None

    def _require(self) -> StorageAdaptor:
        if self._adaptor is None:
            msg = "storage is enabled but was never opened"
            raise StorageError(msg)
        return self._adaptor
