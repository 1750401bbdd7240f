"""Pluggy hook specifications for formbot.

Plugins extend the bot at setup time (extra storage adaptors) and observe
the submission lifecycle. Lifecycle hooks run on the thread that finalized
the session; a failing plugin is logged and never aborts the conversation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pluggy

if TYPE_CHECKING:
    from formbot.infrastructure.storage.base import StorageAdaptor

hookspec = pluggy.HookspecMarker("formbot")
hookimpl = pluggy.HookimplMarker("formbot")


class FormbotHookSpec:
    """Hook specifications for the formbot plugin system."""

    @hookspec
    def register_storage_adaptors(self) -> dict[str, type[StorageAdaptor]] | None:
        """Return name -> StorageAdaptor mappings to extend the adaptor registry."""

    @hookspec
    def post_submit(self, form_name: str, identity: str, data: dict[str, Any]) -> None:
        """Called after a session's answers were submitted."""
