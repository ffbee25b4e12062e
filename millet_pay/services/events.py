"""In-process change feed: typed row events with cancellable subscriptions."""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from itertools import count
from threading import RLock
from typing import Any, Callable

from millet_pay.core.database import utcnow

log = logging.getLogger(__name__)
change_log = logging.getLogger("millet_pay.changes")

ALL_TABLES = "*"


class ChangeKind(str, Enum):
    INSERTED = "row-inserted"
    UPDATED = "row-updated"
    DELETED = "row-deleted"


@dataclass
class ChangeEvent:
    kind: ChangeKind
    table: str
    payload: dict[str, Any]
    at: datetime = field(default_factory=utcnow)


Handler = Callable[[ChangeEvent], None]


class Subscription:
    def __init__(self, feed: "ChangeFeed", table: str, token: int):
        self._feed = feed
        self.table = table
        self._token = token
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._feed._remove(self.table, self._token)
            self.active = False


class ChangeFeed:
    """Publish/subscribe over table changes; handlers run synchronously in the publishing thread."""

    def __init__(self):
        self._handlers: dict[str, dict[int, Handler]] = defaultdict(dict)
        self._tokens = count(1)
        self._lock = RLock()

    def subscribe(self, table: str, handler: Handler) -> Subscription:
        """table="*" receives every event."""
        with self._lock:
            token = next(self._tokens)
            self._handlers[table][token] = handler
        return Subscription(self, table, token)

    def _remove(self, table: str, token: int) -> None:
        with self._lock:
            self._handlers.get(table, {}).pop(token, None)

    def subscriber_count(self, table: str | None = None) -> int:
        with self._lock:
            if table is not None:
                return len(self._handlers.get(table, {}))
            return sum(len(h) for h in self._handlers.values())

    def publish(self, event: ChangeEvent) -> int:
        """Returns the number of handlers that ran without raising."""
        with self._lock:
            handlers = list(self._handlers.get(event.table, {}).values())
            handlers += list(self._handlers.get(ALL_TABLES, {}).values())
        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception:
                # A failing consumer must not undo a committed order change
                log.exception("Change handler failed: table=%s kind=%s", event.table, event.kind.value)
        return delivered

    def emit(self, kind: ChangeKind, table: str, payload: dict[str, Any]) -> int:
        return self.publish(ChangeEvent(kind=kind, table=table, payload=payload))


def log_change(event: ChangeEvent) -> None:
    change_log.info(
        "%s %s id=%s status=%s payment_status=%s",
        event.kind.value,
        event.table,
        event.payload.get("id"),
        event.payload.get("status"),
        event.payload.get("payment_status"),
    )
