"""
Lifecycle notifications for vault records.

Each repository owns its own ``RecordEvents`` so listeners are wired up
explicitly where the repository is built instead of through a module-level
channel. Publishing is synchronous: every listener runs, in the order it was
connected, before ``publish`` returns.
"""

import logging
from typing import Callable, Dict, Iterable, Optional

from django.dispatch import Signal

from vault.models import Record

logger = logging.getLogger(__name__)

ADDED = "added"
UPDATED = "updated"
DELETED = "deleted"
EVENT_TYPES = (ADDED, UPDATED, DELETED)


class RecordEvents:
    """Per-repository dispatcher for the added/updated/deleted events."""

    def __init__(self):
        self.added = Signal()
        self.updated = Signal()
        self.deleted = Signal()
        self._signals: Dict[str, Signal] = {
            ADDED: self.added,
            UPDATED: self.updated,
            DELETED: self.deleted,
        }

    def connect(self, listener: Callable, events: Optional[Iterable[str]] = None) -> None:
        """
        Register a listener for the given events (all of them by default).

        Listeners are called as ``listener(sender=Record, record=..., event=...)``
        and must accept ``**kwargs``.
        """
        for event in events or EVENT_TYPES:
            self._get_signal(event).connect(listener, weak=False)

    def disconnect(self, listener: Callable, events: Optional[Iterable[str]] = None) -> None:
        for event in events or EVENT_TYPES:
            self._get_signal(event).disconnect(listener)

    def publish(self, event: str, record: Record) -> None:
        """
        Fan the event out to every listener.

        A listener that raises is skipped and the others still run. Django
        logs the failure on the ``django.dispatch`` logger.
        """
        self._get_signal(event).send_robust(sender=Record, record=record, event=event)

    def _get_signal(self, event: str) -> Signal:
        try:
            return self._signals[event]
        except KeyError:
            raise ValueError(f"Unknown record event: {event}") from None


def log_record_event(sender, record: Record, event: str, **kwargs) -> None:
    """Listener that writes one log line per lifecycle event."""
    logger.info(f"[EVENT] Record {event}: ID {record.pk}, Name: {record.name}")
