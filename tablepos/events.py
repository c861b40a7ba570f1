"""Push events as a queue feeding a reconciliation step.

Events are triggers only. Their payloads are never applied to local state;
the reconciler asks its collaborators to re-fetch or recompute instead.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from .models import parse_timestamp

logger = logging.getLogger(__name__)

ORDER_EVENTS = frozenset({"order_created", "order_updated", "order_status_changed"})
INVENTORY_EVENTS = frozenset({"inventory_updated"})
EVENT_TYPES = ORDER_EVENTS | INVENTORY_EVENTS


@dataclass(frozen=True)
class Event:
    type: str
    ref_id: str | None
    timestamp: float

    @property
    def is_order_event(self) -> bool:
        return self.type in ORDER_EVENTS


def parse_event(raw: str | bytes | dict) -> Event | None:
    """Parse a push message ``{type, room_id, timestamp, data}``.

    Returns None for malformed messages and unknown event types.
    """
    if isinstance(raw, (str, bytes)):
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Dropping malformed event message")
            return None
    else:
        message = raw
    if not isinstance(message, dict):
        return None

    event_type = message.get("type")
    if event_type not in EVENT_TYPES:
        logger.debug("Ignoring event type %r", event_type)
        return None

    data = message.get("data")
    ref_id = _ref_id(event_type, data if isinstance(data, dict) else {})
    timestamp = parse_timestamp(message.get("timestamp")) or time.time()
    return Event(type=event_type, ref_id=ref_id, timestamp=timestamp)


def _ref_id(event_type: str, data: dict[str, Any]) -> str | None:
    if event_type in ORDER_EVENTS:
        order = data.get("order") if isinstance(data.get("order"), dict) else {}
        ref = data.get("order_id") or data.get("id") or order.get("id")
    else:
        ref = data.get("inventory_id") or data.get("item_id") or data.get("id")
    return str(ref) if ref else None


class EventQueue:
    """FIFO of pending events with duplicate deliveries collapsed."""

    def __init__(self) -> None:
        self._events: dict[tuple[str, str | None], Event] = {}

    def put(self, event: Event) -> bool:
        """Queue ``event``; returns False if an equal (type, ref_id) was already queued."""
        key = (event.type, event.ref_id)
        if key in self._events:
            return False
        self._events[key] = event
        return True

    def drain(self) -> list[Event]:
        """Remove and return every queued event in first-seen order."""
        events = list(self._events.values())
        self._events.clear()
        return events

    def __len__(self) -> int:
        return len(self._events)


@dataclass
class ReconcileSummary:
    order_ids: list[str]
    orders_refreshed: bool
    inventory_refreshed: bool


class EventReconciler:
    """Turns a batch of events into at most one refresh per kind."""

    def __init__(
        self,
        refresh_orders: Callable[[list[str]], Awaitable[Any]],
        refresh_inventory: Callable[[], Awaitable[Any]],
    ) -> None:
        self._refresh_orders = refresh_orders
        self._refresh_inventory = refresh_inventory

    async def reconcile(self, events: list[Event]) -> ReconcileSummary:
        order_ids: list[str] = []
        order_events = False
        inventory_events = False
        for event in events:
            if event.is_order_event:
                order_events = True
                if event.ref_id and event.ref_id not in order_ids:
                    order_ids.append(event.ref_id)
            else:
                inventory_events = True

        if order_events:
            logger.info("Refreshing orders after %d order events", len(order_ids) or 1)
            await self._refresh_orders(order_ids)
        if inventory_events:
            logger.info("Refreshing inventory after push event")
            await self._refresh_inventory()
        return ReconcileSummary(order_ids, order_events, inventory_events)

    async def drain(self, queue: EventQueue) -> ReconcileSummary:
        return await self.reconcile(queue.drain())
