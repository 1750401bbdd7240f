"""Exception hierarchy for formbot.

Only template and configuration errors are fatal; the engine catches
storage, transport and dispatch errors, logs them, and keeps the
conversation going.
"""

from __future__ import annotations


class FormbotError(Exception):
    """Base class for all formbot errors."""


class TemplateError(FormbotError):
    """A form definition failed to load or validate.

    Carries every problem found, not just the first one, so that a single
    ``formbot validate`` run reports the whole list.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        summary = "; ".join(self.problems) if self.problems else "invalid form definition"
        super().__init__(summary)


class ConfigError(FormbotError):
    """Process configuration is inconsistent or incomplete."""


class StorageError(FormbotError):
    """A persistence adaptor failed to open, migrate, or insert."""


class TransportError(FormbotError):
    """The chat transport failed to deliver an outbound message."""


class DispatchError(FormbotError):
    """A submission could not be delivered to the notification endpoint."""
