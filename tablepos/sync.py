"""Push orders created or paid while offline to the remote store."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .db.repositories import OrderRepository
from .errors import RemoteError
from .models import Order

if TYPE_CHECKING:
    from .lifecycle import TableBoard
    from .numbering import OrderNumberService
    from .remote.client import RemoteClient

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    synced: int = 0
    failed: int = 0
    cleared: int = 0
    errors: list[str] = field(default_factory=list)


def pending_sync(orders: list[Order]) -> list[Order]:
    """Orders that still need something from the remote store.

    Every active order is queued; a remote one only needs a network call
    while it has unsent additions. Completed orders stay queued until their
    additions are sent and their payment is confirmed.
    """
    queued = []
    for order in orders:
        if order.is_active or order.unsent_items:
            queued.append(order)
        elif not order.is_remote or not order.payment_synced:
            queued.append(order)
    return queued


class OfflineSyncService:
    """Walks the local queue and reconciles it with the remote store.

    An entry leaves the queue only after the remote store confirmed it.
    A failed entry is left untouched for the next attempt; a created
    order is re-keyed to its remote id immediately, so a later pass never
    creates it twice.
    """

    def __init__(
        self,
        orders: OrderRepository,
        client: RemoteClient,
        tables: TableBoard | None = None,
        numbering: OrderNumberService | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._orders = orders
        self._client = client
        self._tables = tables
        self._numbering = numbering
        self._clock = clock

    async def sync_pending_orders(self) -> SyncResult:
        result = SyncResult()
        queue = pending_sync(self._orders.all())
        if not queue:
            logger.info("Nothing to sync")
            return result

        logger.info("Syncing %d queued orders", len(queue))
        provisional_ids: list[str] = []
        for order in queue:
            check_number = order.order_number_provisional
            try:
                synced_id, cleared = await self._sync_one(order)
            except RemoteError as e:
                result.failed += 1
                result.errors.append(f"Order {order.id}: {e}")
                logger.warning("Order %s not synced, kept in queue: %s", order.id, e)
                continue
            result.synced += 1
            if cleared:
                result.cleared += 1
            if check_number:
                provisional_ids.append(synced_id)

        logger.info(
            "Sync finished: %d synced, %d failed, %d cleared",
            result.synced,
            result.failed,
            result.cleared,
        )
        if provisional_ids and self._numbering is not None:
            await self._numbering.find_collisions()
            self._settle_numbers(provisional_ids)
        return result

    def _settle_numbers(self, order_ids: list[str]) -> None:
        for order_id in order_ids:
            order = self._orders.get(order_id)
            if order is not None and order.order_number_provisional:
                order.order_number_provisional = False
                self._orders.save(order)

    async def _sync_one(self, order: Order) -> tuple[str, bool]:
        """Bring one order up to date remotely.

        Returns the order's id after syncing and whether it left the local
        store.
        """
        if not order.is_remote:
            order = await self._create(order)
        elif order.unsent_items:
            await self._client.update_order(order.id, order.to_update_request())
            logger.info("Order %s: %d queued additions pushed", order.id, len(order.unsent_items))
            order.unsent_items = []
            self._orders.save(order)
        elif order.is_active:
            logger.debug("Order %s already has a remote id", order.id)

        if order.is_active or order.payment_synced:
            return order.id, False

        if order.payment is None:
            raise RemoteError(f"completed order {order.id} has no payment to push")
        await self._client.complete_payment(order.id, order.payment.to_request())
        order.payment_synced = True
        self._orders.save(order)
        logger.info("Payment of order %s pushed", order.id)

        if order.expires_at is None or self._clock() >= order.expires_at:
            self._orders.remove(order.id)
            return order.id, True
        return order.id, False

    async def _create(self, order: Order) -> Order:
        local_id = order.id
        created = await self._client.create_order(order.to_create_request())
        remote_id = str(created.get("id") or "") if isinstance(created, dict) else ""
        if not remote_id:
            raise RemoteError(f"create of order {local_id} returned no id")

        updated = self._orders.replace_id(local_id, remote_id) or order
        if self._tables is not None:
            self._tables.relink(local_id, remote_id)
        logger.info("Order %s synced as %s", local_id, remote_id)

        if updated.is_active and updated.table_id:
            try:
                await self._client.occupy_table(updated.table_id, remote_id)
            except RemoteError as e:
                logger.warning("Table %s not marked occupied remotely: %s", updated.table_id, e)
        return updated
