"""Column type vocabulary per storage dialect.

A field's ``db_type`` may be a portable alias (``STRING``, ``NUMBER``, ...),
a type already native to the dialect, or ``VARCHAR(N)`` on SQL dialects.
"""

from __future__ import annotations

import re

DB_TYPE_MAPPING: dict[str, dict[str, str]] = {
    "mysql": {
        "STRING": "VARCHAR(255)",
        "TEXT": "TEXT",
        "NUMBER": "INT",
        "BOOLEAN": "BOOLEAN",
        "DATETIME": "DATETIME",
        "JSON": "JSON",
    },
    "postgres": {
        "STRING": "VARCHAR(255)",
        "TEXT": "TEXT",
        "NUMBER": "INTEGER",
        "BOOLEAN": "BOOLEAN",
        "DATETIME": "TIMESTAMP",
        "JSON": "JSONB",
    },
    "sqlite": {
        "STRING": "VARCHAR(255)",
        "TEXT": "TEXT",
        "NUMBER": "INTEGER",
        "BOOLEAN": "INTEGER",
        "DATETIME": "TEXT",
        "JSON": "TEXT",
    },
    "mongo": {
        "STRING": "string",
        "TEXT": "string",
        "NUMBER": "int",
        "BOOLEAN": "bool",
        "DATETIME": "date",
        "OBJECT": "object",
    },
}

VALID_DB_TYPES: dict[str, tuple[str, ...]] = {
    "mysql": ("VARCHAR(255)", "TEXT", "INT", "BOOLEAN", "DATETIME", "JSON"),
    "postgres": ("TEXT", "VARCHAR(255)", "INTEGER", "BOOLEAN", "TIMESTAMP", "JSONB"),
    "sqlite": ("VARCHAR(255)", "TEXT", "INTEGER", "REAL", "NUMERIC", "BLOB"),
    "mongo": ("string", "int", "bool", "date", "object"),
}

SQL_DIALECTS = frozenset({"mysql", "postgres", "sqlite"})

_VARCHAR_RE = re.compile(r"^VARCHAR\(\d+\)$")


def resolve_db_type(dialect: str, declared: str) -> str:
    """Map a declared column type to the dialect's concrete type.

    Raises:
        ValueError: *dialect* is unknown or *declared* is not valid for it.
    """
    if dialect not in DB_TYPE_MAPPING:
        known = ", ".join(sorted(DB_TYPE_MAPPING))
        msg = f"unknown db '{dialect}' (known: {known})"
        raise ValueError(msg)

    normalized = declared.strip().upper()
    mapped = DB_TYPE_MAPPING[dialect].get(normalized)
    if mapped is not None:
        return mapped

    valid = VALID_DB_TYPES[dialect]
    for candidate in (declared.strip(), normalized):
        if candidate in valid:
            return candidate

    if dialect in SQL_DIALECTS and _VARCHAR_RE.match(normalized):
        return normalized

    msg = f"invalid db_type '{declared}' for {dialect}. Allowed: {', '.join(valid)}"
    raise ValueError(msg)
