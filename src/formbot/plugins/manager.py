"""Plugin discovery and loading.

Discovery: pip-installed packages exposing the ``formbot.plugins`` entry
point group, plus plugins registered directly by the embedding program.
Capabilities: extra storage adaptors and the ``post_submit`` hook.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any

import pluggy

from formbot.plugins.hookspecs import FormbotHookSpec

PROJECT_NAME = "formbot"
ENTRY_POINT_GROUP = "formbot.plugins"

logger = logging.getLogger(__name__)


class PluginManager:
    """Manages plugin discovery, adaptor registration, and hook dispatch."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(FormbotHookSpec)
        self._loaded = False

    def discover_and_load(self) -> list[str]:
        """Load entry-point plugins and register the adaptors they provide.

        Returns the names of all registered plugins.
        """
        self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        self._normalize_plugin_instances()
        for plugin in self._pm.get_plugins():
            self._register_plugin_adaptors(plugin, self._name_of(plugin))
        self._loaded = True
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        """Register a plugin instance directly."""
        resolved_name = name or plugin.__class__.__name__
        self._pm.register(plugin, name=resolved_name)
        self._register_plugin_adaptors(plugin, resolved_name)
        logger.debug("Registered plugin: %s", resolved_name)

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    def list_plugin_names(self) -> list[str]:
        return [self._name_of(p) for p in self._pm.get_plugins()]

    def notify_submitted(self, form_name: str, identity: str, data: dict[str, Any]) -> None:
        """Fire ``post_submit``; plugin failures are warnings."""
        try:
            self._pm.hook.post_submit(form_name=form_name, identity=identity, data=data)
        except Exception:
            logger.warning("post_submit hook failed for %s", identity, exc_info=True)

    def _name_of(self, plugin: object) -> str:
        name = self._pm.get_name(plugin)
        return name or getattr(plugin, "__name__", plugin.__class__.__name__)

    def _normalize_plugin_instances(self) -> None:
        """Replace plugin classes registered by entry points with instances."""
        for plugin in list(self._pm.get_plugins()):
            if not inspect.isclass(plugin):
                continue
            plugin_name = self._name_of(plugin)
            self._pm.unregister(plugin)
            try:
                instance = plugin()
            except Exception:
                logger.warning(
                    "Failed to instantiate entry-point plugin %s", plugin_name, exc_info=True
                )
                continue
            self._pm.register(instance, name=plugin_name)

    @staticmethod
    def _register_plugin_adaptors(plugin: object, plugin_name: str) -> None:
        """Register the storage adaptors exposed by a single plugin."""
        from formbot.infrastructure.storage import register_adaptor

        hook = getattr(plugin, "register_storage_adaptors", None)
        if hook is None:
            return

        try:
            adaptor_map = hook()
        except Exception:
            logger.warning("Failed to collect adaptors from plugin %s", plugin_name, exc_info=True)
            return

        if adaptor_map is None:
            return
        if not isinstance(adaptor_map, dict):
            logger.warning("Plugin %s returned non-dict adaptor registrations", plugin_name)
            return

        for name, adaptor_cls in adaptor_map.items():
            try:
                register_adaptor(name, adaptor_cls)
            except (TypeError, ValueError):
                logger.warning(
                    "Skipping adaptor registration %r from plugin %s",
                    name,
                    plugin_name,
                    exc_info=True,
                )
