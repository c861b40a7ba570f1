"""Daily sequential order numbers for self-service orders."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Callable, Iterable

from .db.repositories import CounterRepository, OrderRepository
from .errors import RemoteError
from .models import parse_timestamp

if TYPE_CHECKING:
    from .remote.client import RemoteClient

logger = logging.getLogger(__name__)

# How many completed orders to pull when looking for today's maximum
_REMOTE_LOOKBACK = 1000


@dataclass
class OrderNumber:
    number: int
    source: str  # "remote" | "local" | "counter"

    @property
    def provisional(self) -> bool:
        """True if the number was allocated without the remote store's view."""
        return self.source != "remote"


def _day_of(timestamp: float | None) -> date | None:
    if timestamp is None:
        return None
    return date.fromtimestamp(timestamp)


def day_max(numbers: Iterable[tuple[float | None, int | None]], day: date) -> int | None:
    """Highest order number among (created_at, number) pairs created on ``day``."""
    found = [n for ts, n in numbers if n and _day_of(ts) == day]
    return max(found) if found else None


class OrderNumberService:
    """Allocates the next order number of the day.

    Prefers the remote store's maximum over today's completed orders and
    falls back to locally known orders, then to a date-stamped counter.
    Numbers issued while offline are provisional: two devices can hand out
    the same number during an outage. Provisional allocations are logged
    and flagged on the order, and ``find_collisions`` reports duplicates
    once the remote store is reachable again.
    """

    def __init__(
        self,
        client: RemoteClient | None,
        orders: OrderRepository,
        counter: CounterRepository,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._orders = orders
        self._counter = counter
        self._clock = clock

    def _today(self) -> date:
        return date.fromtimestamp(self._clock())

    async def next_order_number(self) -> int:
        return (await self.allocate()).number

    async def allocate(self) -> OrderNumber:
        today = self._today()
        result = await self._from_remote(today)
        if result is None:
            result = self._from_local(today)
            logger.warning(
                "Order number %d allocated offline (%s); it may collide with "
                "numbers issued on other devices",
                result.number,
                result.source,
            )
        self._remember(result.number, today)
        return result

    async def _from_remote(self, today: date) -> OrderNumber | None:
        if self._client is None:
            return None
        try:
            completed = await self._client.list_orders("completed", _REMOTE_LOOKBACK, 0)
        except RemoteError as e:
            logger.warning("Could not fetch completed orders, using local numbering: %s", e)
            return None

        remote_max = day_max(_remote_pairs(completed), today)
        # Numbers held by orders still open on this device are in use too
        local_max = day_max(
            ((o.created_at, o.order_number) for o in self._orders.active()), today
        )
        highest = max(remote_max or 0, local_max or 0)
        logger.info("Highest order number today: %d", highest)
        return OrderNumber(highest + 1, "remote")

    def _from_local(self, today: date) -> OrderNumber:
        counter, stamped = self._counter.read()
        if stamped != today.isoformat():
            logger.info("Order number counter reset for %s", today.isoformat())
            counter = 0
            self._counter.write(0, today.isoformat())

        local_max = day_max(
            ((o.created_at, o.order_number) for o in self._orders.all()), today
        )
        if local_max is not None:
            return OrderNumber(max(local_max, counter) + 1, "local")
        return OrderNumber(counter + 1, "counter")

    def _remember(self, number: int, today: date) -> None:
        counter, stamped = self._counter.read()
        if stamped != today.isoformat():
            counter = 0
        self._counter.write(max(counter, number), today.isoformat())

    def current(self) -> int:
        """Last number handed out today, or 0."""
        counter, stamped = self._counter.read()
        if stamped != self._today().isoformat():
            return 0
        return counter

    def reset(self) -> None:
        self._counter.reset()
        logger.info("Order number counter cleared")

    async def find_collisions(self) -> list[tuple[str, int]]:
        """Report local provisional numbers that the remote store also issued today.

        Returns:
            (order id, number) pairs; empty if nothing collides or the remote
            store is unreachable.
        """
        provisional = [
            o for o in self._orders.all() if o.order_number_provisional and o.order_number
        ]
        if not provisional or self._client is None:
            return []
        try:
            completed = await self._client.list_orders("completed", _REMOTE_LOOKBACK, 0)
        except RemoteError as e:
            logger.warning("Collision check skipped: %s", e)
            return []

        today = self._today()
        remote_ids: dict[int, set[str]] = {}
        for raw in completed:
            ts = parse_timestamp(raw.get("created_at") or raw.get("createdAt"))
            number = raw.get("order_number")
            if number and _day_of(ts) == today:
                remote_ids.setdefault(int(number), set()).add(str(raw.get("id")))

        collisions = []
        for order in provisional:
            others = remote_ids.get(order.order_number, set()) - {order.id}
            if _day_of(order.created_at) == today and others:
                logger.warning(
                    "Order number %d of order %s is also used by %s",
                    order.order_number,
                    order.id,
                    ", ".join(sorted(others)),
                )
                collisions.append((order.id, order.order_number))
        return collisions


def _remote_pairs(raw_orders: list[dict]) -> list[tuple[float | None, int | None]]:
    return [
        (
            parse_timestamp(o.get("created_at") or o.get("createdAt")),
            o.get("order_number"),
        )
        for o in raw_orders
    ]
