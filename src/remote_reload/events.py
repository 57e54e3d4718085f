"""Small publish/subscribe helper for cross-component signalling."""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventMeta:
    """Metadata delivered alongside every event payload."""
    timestamp: int
    id: str
    source: Optional[str] = None


EventCallback = Callable[[Any, EventMeta], None]
EventFilter = Callable[[Any, EventMeta], bool]


@dataclass(eq=False)
class Subscription:
    callback: EventCallback
    once: bool = False
    filter: Optional[EventFilter] = None


@dataclass(frozen=True)
class EventRecord:
    data: Any
    meta: EventMeta


class EventBus:
    """Synchronous event bus with per-event history.

    A subscriber that raises is logged and skipped; the remaining
    subscribers of the same event still run.
    """

    def __init__(self, max_history: int = 100):
        self.max_history = max_history
        self._listeners: Dict[str, List[Subscription]] = {}
        self._history: Dict[str, Deque[EventRecord]] = {}

    def on(
        self,
        event: str,
        callback: EventCallback,
        once: bool = False,
        filter: Optional[EventFilter] = None,  # pylint: disable=redefined-builtin
    ) -> Callable[[], None]:
        """Subscribe ``callback`` and return a function that unsubscribes it."""
        self._listeners.setdefault(event, []).append(
            Subscription(callback=callback, once=once, filter=filter)
        )
        return lambda: self.off(event, callback)

    def once(self, event: str, callback: EventCallback) -> Callable[[], None]:
        return self.on(event, callback, once=True)

    def off(self, event: str, callback: Optional[EventCallback] = None) -> None:
        """Remove ``callback`` from ``event``, or every listener when omitted."""
        if event not in self._listeners:
            return
        if callback is None:
            del self._listeners[event]
            return
        remaining = [sub for sub in self._listeners[event] if sub.callback != callback]
        if remaining:
            self._listeners[event] = remaining
        else:
            del self._listeners[event]

    def emit(
        self,
        event: str,
        data: Any = None,
        source: Optional[str] = None,
        id: Optional[str] = None,  # pylint: disable=redefined-builtin
    ) -> None:
        meta = EventMeta(
            timestamp=int(time.time() * 1000),
            id=id or uuid.uuid4().hex,
            source=source,
        )
        history = self._history.setdefault(event, deque(maxlen=self.max_history))
        history.append(EventRecord(data=data, meta=meta))

        finished: List[Subscription] = []
        for sub in list(self._listeners.get(event, [])):
            if sub.filter is not None and not sub.filter(data, meta):
                continue
            try:
                sub.callback(data, meta)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Listener for event %s failed", event)
            if sub.once:
                finished.append(sub)

        if finished and event in self._listeners:
            remaining = [sub for sub in self._listeners[event] if sub not in finished]
            if remaining:
                self._listeners[event] = remaining
            else:
                del self._listeners[event]

    def get_history(self, event: str) -> List[EventRecord]:
        return list(self._history.get(event, ()))

    def events(self) -> List[str]:
        return list(self._listeners)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def has_listeners(self, event: str) -> bool:
        return self.listener_count(event) > 0

    def listener_exists(self, event: str, callback: EventCallback) -> bool:
        return any(sub.callback == callback for sub in self._listeners.get(event, ()))

    def clear(self, event: Optional[str] = None) -> None:
        """Drop listeners and history for ``event``, or for everything."""
        if event is None:
            self._listeners.clear()
            self._history.clear()
        else:
            self._listeners.pop(event, None)
            self._history.pop(event, None)
