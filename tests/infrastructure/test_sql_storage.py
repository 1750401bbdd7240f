"""Tests for the SQL storage adaptors and the Storage facade (SQLite)."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect, text

from formbot.config.models import DatabaseConfig, SqliteConfig
from formbot.domain.template import FormTemplate
from formbot.errors import ConfigError, StorageError
from formbot.infrastructure.storage import Storage
from formbot.infrastructure.storage.sql import SqliteAdaptor, build_table
from tests.conftest import build_template


def _template(**overrides: object) -> FormTemplate:
    return build_template(
        {"name": "name", "label": "Name", "required": True, "db_type": "STRING"},
        {"name": "age", "type": "number", "db_type": "NUMBER"},
        {"name": "note"},
        db="sqlite",
        **overrides,
    )


def _config(**overrides: object) -> DatabaseConfig:
    values: dict[str, object] = {"enable": True, "sqlite": SqliteConfig(path="forms.db")}
    values.update(overrides)
    return DatabaseConfig(**values)  # type: ignore[arg-type]


def _rows(db_path: Path, table_name: str) -> list[dict[str, object]]:
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        with engine.connect() as conn:
            result = conn.execute(text(f"SELECT * FROM {table_name}"))
            return [dict(row._mapping) for row in result]
    finally:
        engine.dispose()


@pytest.fixture
def storage(tmp_path: Path) -> Iterator[Storage]:
    s = Storage(_config(), base_dir=tmp_path)
    s.open()
    yield s
    s.close()


class TestBuildTable:
    def test_columns(self) -> None:
        table = build_table(_template())
        assert [c.name for c in table.columns] == ["id", "name", "age"]
        assert table.c.id.primary_key
        assert not table.c.name.nullable
        assert table.c.age.nullable

    def test_no_db_columns(self) -> None:
        with pytest.raises(StorageError, match="no fields with db_type"):
            build_table(build_template({"name": "plain"}))


class TestMigrate:
    def test_creates_table(self, storage: Storage, tmp_path: Path) -> None:
        assert storage.migrate(_template()) is True

        engine = create_engine(f"sqlite:///{tmp_path / 'forms.db'}")
        try:
            columns = {c["name"]: c for c in inspect(engine).get_columns("signups")}
        finally:
            engine.dispose()
        assert set(columns) == {"id", "name", "age"}
        assert str(columns["name"]["type"]) == "VARCHAR(255)"
        assert str(columns["age"]["type"]) == "INTEGER"

    def test_idempotent(self, storage: Storage) -> None:
        assert storage.migrate(_template()) is True
        assert storage.migrate(_template()) is False


class TestInsert:
    def test_inserts_persisted_fields(self, storage: Storage, tmp_path: Path) -> None:
        template = _template()
        storage.migrate(template)
        row_id = storage.insert(
            template.table_name, template.fields, {"name": "Ada", "age": "36", "note": "x"}
        )
        assert row_id is not None
        assert len(row_id) == 36

        rows = _rows(tmp_path / "forms.db", "signups")
        assert rows == [{"id": row_id, "name": "Ada", "age": 36}]

    def test_distinct_ids(self, storage: Storage) -> None:
        template = _template()
        storage.migrate(template)
        ids = {
            storage.insert(template.table_name, template.fields, {"name": f"n{n}", "age": "1"})
            for n in range(5)
        }
        assert len(ids) == 5

    def test_missing_table_raises(self, storage: Storage) -> None:
        template = _template()
        with pytest.raises(StorageError, match="failed to insert"):
            storage.insert(template.table_name, template.fields, {"name": "Ada"})

    def test_no_persisted_fields_raises(self, storage: Storage) -> None:
        template = build_template({"name": "plain"})
        with pytest.raises(StorageError, match="no fields with db_type"):
            storage.insert(template.table_name, template.fields, {"plain": "x"})


class TestFacade:
    def test_disabled_is_noop(self, tmp_path: Path) -> None:
        storage = Storage(DatabaseConfig(), base_dir=tmp_path)
        storage.open()
        assert storage.adaptor is None
        assert storage.migrate(_template()) is False
        assert storage.insert("signups", _template().fields, {"name": "Ada"}) is None
        storage.close()
        assert list(tmp_path.iterdir()) == []

    def test_open_selects_adaptor(self, storage: Storage) -> None:
        assert isinstance(storage.adaptor, SqliteAdaptor)

    def test_not_opened(self, tmp_path: Path) -> None:
        storage = Storage(_config(), base_dir=tmp_path)
        with pytest.raises(StorageError, match="never opened"):
            storage.insert("signups", _template().fields, {})

    def test_dialect_mismatch(self, tmp_path: Path) -> None:
        storage = Storage(_config(use_adaptor="postgres"), base_dir=tmp_path)
        with pytest.raises(ConfigError, match="declares db 'sqlite'"):
            storage.check_template(_template())

    def test_mismatch_ignored_when_disabled(self) -> None:
        Storage(DatabaseConfig(use_adaptor="postgres")).check_template(_template())

    def test_unknown_adaptor(self) -> None:
        storage = Storage(_config(use_adaptor="mongo"))
        with pytest.raises(StorageError, match="mongo adaptor is not available"):
            storage.open()

    def test_unreachable_database(self, tmp_path: Path) -> None:
        config = _config(sqlite=SqliteConfig(path=str(tmp_path / "missing" / "dir" / "x.db")))
        storage = Storage(config)
        with pytest.raises(StorageError, match="failed to connect to sqlite"):
            storage.open()
