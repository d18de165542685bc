"""In-process publish/subscribe for request and message change events.

Delivery is best-effort: a handler that raises is logged and skipped, and
subscribers must be ready for duplicates, reordering and gaps. A client that
reconnects re-fetches current state over HTTP and feeds it through an
:class:`EntityMerger` together with whatever events arrive afterwards.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from flask import Flask, current_app

logger = logging.getLogger(__name__)

_EXTENSION_KEY = "lendshare.events"


@dataclass(frozen=True)
class Event:
    """A change notification for a single entity."""

    entity_type: str
    entity_id: int
    payload: dict
    version: str = ""
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Handler = Callable[[Event], Any]


class Subscription:
    """Handle returned by :meth:`EventBus.subscribe`."""

    def __init__(self, bus: "EventBus", channel: str, token: int) -> None:
        self._bus = bus
        self.channel = channel
        self._token = token
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._bus._remove(self.channel, self._token)
            self.active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()


class EventBus:
    """Channel-keyed fan-out of :class:`Event` objects."""

    def __init__(self) -> None:
        self._handlers: dict[str, dict[int, Handler]] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, channel: str, handler: Handler) -> Subscription:
        with self._lock:
            token = next(self._tokens)
            self._handlers.setdefault(channel, {})[token] = handler
        return Subscription(self, channel, token)

    def _remove(self, channel: str, token: int) -> None:
        with self._lock:
            handlers = self._handlers.get(channel)
            if handlers is None:
                return
            handlers.pop(token, None)
            if not handlers:
                del self._handlers[channel]

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._handlers.get(channel, {}))

    def publish(self, channel: str, event: Event) -> int:
        """Deliver ``event`` to every handler on ``channel``; returns deliveries made."""

        with self._lock:
            handlers = list(self._handlers.get(channel, {}).values())
        delivered = 0
        for handler in handlers:
            try:
                handler(event)
            except Exception:  # pylint: disable=broad-except
                logger.exception(
                    "Event handler failed on %s for %s %s",
                    channel,
                    event.entity_type,
                    event.entity_id,
                )
                continue
            delivered += 1
        return delivered


class EntityMerger:
    """Local view of entities keyed by id that tolerates replayed events.

    An event whose ``version`` is older than the stored one is ignored, so a
    late duplicate never rolls the view back after a fresh re-fetch.
    """

    def __init__(self) -> None:
        self._entities: dict[int, dict] = {}
        self._versions: dict[int, str] = {}

    def merge(self, event: Event) -> bool:
        """Apply an event; return True when the view changed."""

        return self.merge_snapshot(event.entity_id, event.payload, event.version)

    def merge_snapshot(self, entity_id: int, payload: dict, version: str = "") -> bool:
        current = self._versions.get(entity_id)
        if current is not None and version < current:
            return False
        if self._entities.get(entity_id) == payload and current == version:
            return False
        self._entities[entity_id] = dict(payload)
        self._versions[entity_id] = version
        return True

    def get(self, entity_id: int) -> Optional[dict]:
        return self._entities.get(entity_id)

    def values(self) -> list[dict]:
        return [self._entities[key] for key in sorted(self._entities)]

    def __len__(self) -> int:
        return len(self._entities)


def init_app(app: Flask) -> EventBus:
    bus = EventBus()
    app.extensions[_EXTENSION_KEY] = bus
    return bus


def get_event_bus() -> EventBus:
    return current_app.extensions[_EXTENSION_KEY]


def publish(channels: list[str], event: Event) -> None:
    """Publish the same event on several channels of the current app's bus."""

    bus = get_event_bus()
    for channel in channels:
        bus.publish(channel, event)
