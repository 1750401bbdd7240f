"""SQL adaptors (SQLite, PostgreSQL, MySQL) over SQLAlchemy Core.

The table is generated from the template: an ``id`` primary key plus one
column per field that declares a ``db_type``, using the dialect type the
template loader already resolved. Submissions are plain inserts; every
answer is bound as a string and the database coerces it.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

from sqlalchemy import (
    Column,
    MetaData,
    String,
    Table,
    column,
    create_engine,
    event,
    inspect,
    table,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.types import UserDefinedType

from formbot.errors import StorageError
from formbot.infrastructure.storage.base import StorageAdaptor

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from formbot.config.models import DatabaseConfig
    from formbot.domain.template import FieldSpec, FormTemplate

logger = logging.getLogger(__name__)


class DeclaredType(UserDefinedType[Any]):
    """A column type emitted verbatim from the template's resolved db_type."""

    cache_ok = True

    def __init__(self, ddl: str) -> None:
        self.ddl = ddl

    def get_col_spec(self, **kw: Any) -> str:
        return self.ddl


def build_table(template: FormTemplate, metadata: MetaData | None = None) -> Table:
    """The SQLAlchemy Table for *template*.

    Raises:
        StorageError: no field declares a db_type.
    """
    columns = template.columns()
    if not columns:
        msg = f"no fields with db_type found for table '{template.table_name}'"
        raise StorageError(msg)
    return Table(
        template.table_name,
        metadata if metadata is not None else MetaData(),
        Column("id", String(36), primary_key=True),
        *(
            Column(spec.name, DeclaredType(ddl), nullable=not spec.required)
            for spec, ddl in columns
        ),
    )


class SqlAdaptor(StorageAdaptor):
    """Shared implementation; subclasses only pick the name and connect args."""

    name: ClassVar[str] = ""

    def __init__(self) -> None:
        self._engine: Engine | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            msg = f"{self.name} adaptor is not open"
            raise StorageError(msg)
        return self._engine

    def _connect_args(self, config: DatabaseConfig) -> dict[str, Any]:
        return {"connect_timeout": int(config.connect_timeout)}

    def _configure(self, engine: Engine) -> None:
        """Hook for per-dialect connection setup."""

    def open(self, config: DatabaseConfig, *, base_dir: Path | None = None) -> None:
        url = config.resolve_url(base_dir)
        try:
            engine = create_engine(
                url,
                echo=False,
                pool_pre_ping=True,
                connect_args=self._connect_args(config),
            )
            self._configure(engine)
            with engine.connect():
                pass
        except SQLAlchemyError as exc:
            msg = f"failed to connect to {self.name} database: {exc}"
            raise StorageError(msg) from exc
        except ImportError as exc:
            msg = f"{self.name} driver is not installed: {exc}"
            raise StorageError(msg) from exc
        self._engine = engine

    def migrate(self, template: FormTemplate) -> bool:
        metadata = MetaData()
        target = build_table(template, metadata)
        try:
            if inspect(self.engine).has_table(template.table_name):
                logger.info("Table %s already exists, nothing to migrate", template.table_name)
                return False
            metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            msg = f"failed to create table {template.table_name}: {exc}"
            raise StorageError(msg) from exc
        logger.info("Created table %s with %d columns", target.name, len(target.columns))
        return True

    def insert(
        self,
        table_name: str,
        fields: Sequence[FieldSpec],
        answers: Mapping[str, str],
    ) -> str:
        persisted = [spec.name for spec in fields if spec.db_type]
        if not persisted:
            msg = f"no fields with db_type to insert into {table_name}"
            raise StorageError(msg)

        row_id = str(uuid.uuid4())
        target = table(table_name, column("id"), *(column(name) for name in persisted))
        values = {"id": row_id, **{name: answers.get(name, "") for name in persisted}}
        try:
            with self.engine.begin() as conn:
                conn.execute(target.insert().values(**values))
        except SQLAlchemyError as exc:
            msg = f"failed to insert into {table_name}: {exc}"
            raise StorageError(msg) from exc
        return row_id

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None


class SqliteAdaptor(SqlAdaptor):
    name: ClassVar[str] = "sqlite"

    def _connect_args(self, config: DatabaseConfig) -> dict[str, Any]:
        return {"timeout": config.connect_timeout}

    def _configure(self, engine: Engine) -> None:
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()


class PostgresAdaptor(SqlAdaptor):
    name: ClassVar[str] = "postgres"


class MysqlAdaptor(SqlAdaptor):
    name: ClassVar[str] = "mysql"


BUILTIN_ADAPTORS: tuple[type[SqlAdaptor], ...] = (SqliteAdaptor, PostgresAdaptor, MysqlAdaptor)
