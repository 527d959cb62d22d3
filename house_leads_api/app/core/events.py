"""
In-process change notifications per table.

Services publish a ``ChangeEvent`` after every committed insert, update
or delete.  Subscribers register a callback for one table (or ``"*"``
for all of them) and receive an unsubscribe handle.  There is no
buffering, merging or de-duplication: each write produces exactly one
event for each subscriber.
"""

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from .db import now_iso

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

ALL_TABLES = "*"


@dataclass
class ChangeEvent:
    table: str
    event_type: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None
    commit_timestamp: str = field(default_factory=now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "eventType": self.event_type,
            "new": self.new or {},
            "old": self.old or {},
            "commit_timestamp": self.commit_timestamp,
        }


Callback = Callable[[ChangeEvent], None]


class ChangeFeed:
    """Registry of per-table subscribers."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Callback]] = {}
        self._lock = Lock()

    def subscribe(self, table: str, callback: Callback) -> Callable[[], None]:
        """Register ``callback`` for ``table`` and return a function that removes it."""
        with self._lock:
            self._subscribers.setdefault(table, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(table, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def subscriber_count(self, table: str) -> int:
        with self._lock:
            return len(self._subscribers.get(table, []))

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(event.table, []))
            callbacks += self._subscribers.get(ALL_TABLES, [])
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                # The write is already committed; subscribers cannot veto it.
                logger.exception("Change subscriber failed for %s %s", event.table, event.event_type)


change_feed = ChangeFeed()
