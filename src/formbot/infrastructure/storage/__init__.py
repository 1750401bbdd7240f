"""Pluggable submission storage.

The SQL adaptors are registered on import; plugins add more through the
``register_storage_adaptors`` hook.
"""

from __future__ import annotations

from formbot.infrastructure.storage.base import (
    ADAPTOR_REGISTRY,
    Storage,
    StorageAdaptor,
    get_adaptor,
    register_adaptor,
)
from formbot.infrastructure.storage.sql import BUILTIN_ADAPTORS

for _adaptor_cls in BUILTIN_ADAPTORS:
    register_adaptor(_adaptor_cls.name, _adaptor_cls)

__all__ = [
    "ADAPTOR_REGISTRY",
    "Storage",
    "StorageAdaptor",
    "get_adaptor",
    "register_adaptor",
]
