"""Order lifecycle: saving, kitchen status, checkout and table occupancy."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Callable

from .billing import OrderTotals, calculate_totals, change_due
from .db.repositories import OrderRepository, TableRepository
from .errors import (
    InvalidTransitionError,
    ItemNotFoundError,
    RemoteError,
    TableOccupiedError,
)
from .models import (
    ITEM_STATUSES,
    Order,
    OrderLineItem,
    Payment,
    Table,
    next_status,
    status_rank,
)

if TYPE_CHECKING:
    from .numbering import OrderNumberService
    from .remote.client import RemoteClient

logger = logging.getLogger(__name__)


@dataclass
class CartItem:
    """Quantity of a menu item the staff member wants on the order."""

    menu_item_id: str
    name: str
    price: float
    quantity: int
    is_vegetarian: bool = False


@dataclass
class CheckoutResult:
    accepted: bool
    totals: OrderTotals
    order: Order | None = None
    change: float = 0.0
    reason: str | None = None
    payment_confirmed: bool = False


class TableBoard:
    """Local table occupancy, the source of truth for the staff UI."""

    def __init__(self, tables: TableRepository, orders: OrderRepository) -> None:
        self._tables = tables
        self._orders = orders

    def holder(self, table_id: str) -> str | None:
        """Id of the active order linked to a table, if any."""
        for order in self._orders.active():
            if order.table_id == table_id:
                return order.id
        table = self._tables.get(table_id)
        if table is not None and table.is_occupied and table.current_order_id:
            if self._orders.get(table.current_order_id) is not None:
                return table.current_order_id
        return None

    def ensure_available(self, table_id: str, order_id: str | None = None) -> None:
        """Raise TableOccupiedError if another active order holds the table."""
        holder = self.holder(table_id)
        if holder is not None and holder != order_id:
            raise TableOccupiedError(table_id, holder)

    def occupy(self, table_id: str, order_id: str) -> Table:
        self.ensure_available(table_id, order_id)
        table = self._tables.get(table_id) or Table(id=table_id)
        table.is_occupied = True
        table.current_order_id = order_id
        self._tables.save(table)
        return table

    def vacate(self, table_id: str) -> Table:
        table = self._tables.get(table_id) or Table(id=table_id)
        table.is_occupied = False
        table.current_order_id = None
        self._tables.save(table)
        return table

    def is_occupied(self, table_id: str) -> bool:
        table = self._tables.get(table_id)
        return table is not None and table.is_occupied

    def relink(self, old_order_id: str, new_order_id: str) -> None:
        for table in self._tables.all():
            if table.current_order_id == old_order_id:
                table.current_order_id = new_order_id
                self._tables.save(table)

    async def refresh(self, client: RemoteClient) -> bool:
        """Replace local tables with the remote list.

        Tables held by an active order on this device stay occupied.
        """
        try:
            raw = await client.list_tables()
        except RemoteError as e:
            logger.warning("Table refresh failed, keeping local state: %s", e)
            return False

        held = {o.table_id: o.id for o in self._orders.active() if o.table_id}
        tables = []
        for data in raw:
            table = Table.from_dict(data)
            if table.id in held:
                table.is_occupied = True
                table.current_order_id = held[table.id]
            tables.append(table)
        self._tables.save_all(tables)
        return True


class OrderLifecycleManager:
    """Owns order saves, line-item status changes and checkout.

    Local state is updated first; remote writes are attempted afterwards
    and a failed write leaves the local copy queued for the offline sync.
    """

    def __init__(
        self,
        orders: OrderRepository,
        tables: TableBoard,
        client: RemoteClient | None = None,
        numbering: OrderNumberService | None = None,
        *,
        self_service: bool = False,
        tax_rate: float = 0.05,
        completed_ttl_minutes: int = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._orders = orders
        self._tables = tables
        self._client = client
        self._numbering = numbering
        self._self_service = self_service
        self._tax_rate = tax_rate
        self._completed_ttl = completed_ttl_minutes * 60
        self._clock = clock

    def active_orders(self) -> list[Order]:
        return self._orders.active()

    # ── saving ──

    async def save_order(
        self,
        cart: list[CartItem],
        *,
        order_id: str | None = None,
        table_number: str = "",
        customer_name: str = "",
        table_id: str | None = None,
    ) -> Order:
        """Create or edit an order from the current cart.

        Raises:
            OrderNotFoundError: If ``order_id`` is not a known order.
            InvalidTransitionError: If the order is already completed.
            TableOccupiedError: If ``table_id`` is held by another active order.
        """
        now = self._clock()

        if order_id is None:
            if table_id:
                self._tables.ensure_available(table_id)
            order = Order(
                id=self._new_local_id(now),
                table_number=table_number.strip(),
                customer_name=customer_name.strip(),
                created_at=now,
                table_id=table_id,
                is_self_service=self._self_service,
            )
            await self._assign_number(order)
            order.items = [
                self._new_batch(c, c.quantity, now) for c in cart if c.quantity > 0
            ]
            added = []
        else:
            order = self._orders.require(order_id)
            if not order.is_active:
                raise InvalidTransitionError(f"order {order_id} is already completed")
            if table_number.strip():
                order.table_number = table_number.strip()
            if customer_name.strip():
                order.customer_name = customer_name.strip()
            added = self._apply_cart(order, cart, now)

        order.saved_at = now
        order.ingredients_deducted = False
        self._orders.save(order)
        if order_id is None and order.table_id:
            self._tables.occupy(order.table_id, order.id)
        logger.info("Order %s saved locally (%d batches)", order.id, len(order.items))

        if order_id is None:
            return await self._push_new(order)
        if order.is_remote and added:
            order.queue_unsent(added)
            self._orders.save(order)
            await self.push_unsent(order)
        return order

    async def push_unsent(self, order: Order) -> bool:
        """Send the order's queued additions; they stay queued on failure."""
        if not order.unsent_items or self._client is None:
            return False
        try:
            await self._client.update_order(order.id, order.to_update_request())
        except RemoteError as e:
            logger.warning("Order %s update queued for sync: %s", order.id, e)
            return False
        logger.info("Order %s: %d new items sent", order.id, len(order.unsent_items))
        order.unsent_items = []
        self._orders.save(order)
        return True

    def _new_local_id(self, now: float) -> str:
        candidate = int(now * 1000)
        while self._orders.get(str(candidate)) is not None:
            candidate += 1
        return str(candidate)

    def _new_batch(self, cart_item: CartItem, quantity: int, now: float) -> OrderLineItem:
        return OrderLineItem(
            id=cart_item.menu_item_id,
            name=cart_item.name,
            price=cart_item.price,
            quantity=quantity,
            is_vegetarian=cart_item.is_vegetarian,
            status="pending",
            status_updated_at=now,
            sub_id=f"{cart_item.menu_item_id}-{int(now * 1000)}",
        )

    async def _assign_number(self, order: Order) -> None:
        if not order.is_self_service:
            return
        if order.table_number.isdigit():
            order.order_number = int(order.table_number)
            return
        if self._numbering is None:
            return
        allocated = await self._numbering.allocate()
        order.order_number = allocated.number
        order.order_number_provisional = allocated.provisional
        order.table_number = order.table_number or str(allocated.number)

    def _apply_cart(self, order: Order, cart: list[CartItem], now: float) -> list[dict]:
        """Merge the cart into the order's batches.

        Existing batches are kept. Increases go to a pending batch; decreases
        only shrink pending batches and never go below what has already been
        deducted or has left the pending state. Returns the added quantities
        as request items.
        """
        wanted = {c.menu_item_id: c for c in cart}
        added: list[dict] = []
        menu_ids = list(dict.fromkeys([*order.menu_item_quantities(), *wanted]))

        for menu_id in menu_ids:
            cart_item = wanted.get(menu_id)
            target = cart_item.quantity if cart_item else 0
            batches = order.batches_for(menu_id)
            total = sum(b.quantity for b in batches)

            if target > total:
                extra = target - total
                pending = next((b for b in batches if b.status == "pending"), None)
                if pending is not None:
                    pending.quantity += extra
                    pending.status_updated_at = now
                else:
                    order.items.append(self._new_batch(cart_item, extra, now))
                added.append({"menu_item_id": menu_id, "quantity": extra, "notes": ""})
            elif target < total:
                self._shrink(order, menu_id, target, total)

        order.items = [i for i in order.items if i.quantity > 0]
        return added

    def _shrink(self, order: Order, menu_id: str, target: int, total: int) -> None:
        batches = order.batches_for(menu_id)
        if order.is_remote:
            logger.warning(
                "Order %s: cannot reduce %s on a synced order, keeping %d",
                order.id,
                menu_id,
                total,
            )
            return
        started = sum(b.quantity for b in batches if b.status != "pending")
        floor = max(order.previous_deducted_quantities.get(menu_id, 0), started)
        if target < floor:
            logger.warning(
                "Order %s: %s kept at %d (already deducted or in the kitchen)",
                order.id,
                menu_id,
                floor,
            )
            target = floor
        surplus = total - target
        for batch in reversed(batches):
            if surplus <= 0:
                break
            if batch.status != "pending":
                continue
            take = min(batch.quantity, surplus)
            batch.quantity -= take
            surplus -= take

    async def _push_new(self, order: Order) -> Order:
        if self._client is None:
            return order
        try:
            created = await self._client.create_order(order.to_create_request())
        except RemoteError as e:
            logger.warning("Order %s kept offline: %s", order.id, e)
            return order

        remote_id = str(created.get("id") or "") if isinstance(created, dict) else ""
        if not remote_id:
            logger.warning("Order %s: create response had no id, kept offline", order.id)
            return order
        order = self.adopt_remote_id(order.id, remote_id) or order

        if order.table_id:
            try:
                await self._client.occupy_table(order.table_id, order.id)
            except RemoteError as e:
                logger.warning("Table %s not marked occupied remotely: %s", order.table_id, e)
        return order

    def adopt_remote_id(self, local_id: str, remote_id: str) -> Order | None:
        """Replace a local order id with the id issued by the remote store."""
        order = self._orders.replace_id(local_id, remote_id)
        if order is not None:
            self._tables.relink(local_id, remote_id)
            logger.info("Order %s is now %s", local_id, remote_id)
        return order

    # ── kitchen status ──

    async def set_item_status(self, order_id: str, item_key: str, status: str) -> OrderLineItem:
        """Move one batch forward to ``status``.

        Raises:
            InvalidTransitionError: If ``status`` is unknown or earlier than
                the batch's current status.
        """
        if status not in ITEM_STATUSES:
            raise InvalidTransitionError(f"unknown status: {status!r}")
        order = self._orders.require(order_id)
        item = order.find_item(item_key)
        if item is None:
            raise ItemNotFoundError(item_key)
        if status_rank(status) < status_rank(item.status):
            raise InvalidTransitionError(
                f"{item.name}: cannot go from {item.status} back to {status}"
            )
        if status == item.status:
            return item

        item.status = status
        item.status_updated_at = self._clock()
        self._orders.save(order)
        await self._push_status(order, [item])
        return item

    async def advance_item(self, order_id: str, item_key: str) -> OrderLineItem:
        """Move one batch to the next kitchen status."""
        order = self._orders.require(order_id)
        item = order.find_item(item_key)
        if item is None:
            raise ItemNotFoundError(item_key)
        following = next_status(item.status)
        if following is None:
            raise InvalidTransitionError(f"{item.name} is already served")
        return await self.set_item_status(order_id, item.key, following)

    async def serve_ready(self, order_id: str, display_name: str) -> list[OrderLineItem]:
        """Serve every ready batch of a dish; other batches are untouched."""
        order = self._orders.require(order_id)
        now = self._clock()
        served = []
        for item in order.items:
            if item.name == display_name and item.status == "ready":
                item.status = "served"
                item.status_updated_at = now
                served.append(item)
        if not served:
            return []
        self._orders.save(order)
        logger.info(
            "Order %s: served %d units of %s",
            order.id,
            sum(i.quantity for i in served),
            display_name,
        )
        await self._push_status(order, served)
        return served

    async def _push_status(self, order: Order, items: list[OrderLineItem]) -> None:
        if self._client is None or not order.is_remote:
            return
        for item in items:
            try:
                await self._client.update_item_status(
                    order.id, item.remote_item_id or item.id, item.status
                )
            except RemoteError as e:
                logger.warning("Status of %s not sent: %s", item.key, e)

    # ── checkout ──

    async def checkout(
        self,
        order_id: str,
        payment: Payment,
        discount: float | str = 0,
        discount_type: str = "amount",
    ) -> CheckoutResult:
        """Complete payment for an order.

        Marks the order completed and vacates its table locally before any
        remote call, taking it out of the active set. A cash
        payment below the amount due is rejected without changing anything.
        """
        order = self._orders.require(order_id)
        if not order.is_active:
            raise InvalidTransitionError(f"order {order_id} is already completed")

        totals = calculate_totals(order.items, discount, discount_type, self._tax_rate)
        if payment.method == "cash":
            change = change_due(payment.amount_received, totals.final_amount)
            if change < 0:
                return CheckoutResult(
                    accepted=False,
                    totals=totals,
                    order=order,
                    change=change,
                    reason="Insufficient cash",
                )
            payment.change_returned = change
        else:
            change = 0.0
            payment.amount_received = payment.amount_received or totals.final_amount
            payment.change_returned = 0.0

        now = self._clock()
        order.status = "completed"
        order.final_amount = totals.final_amount
        order.tax_amount = totals.tax
        order.discount_amount = totals.discount
        order.payment = payment
        order.completed_at = now
        order.expires_at = now + self._completed_ttl if order.is_self_service else now
        order.payment_synced = False
        self._orders.save(order)
        if order.table_id:
            self._tables.vacate(order.table_id)

        if order.is_remote and self._client is not None:
            await self.push_unsent(order)
            try:
                await self._client.complete_payment(order.id, payment.to_request())
                order.payment_synced = True
            except RemoteError as e:
                logger.warning("Payment for order %s queued for sync: %s", order.id, e)
            self._orders.save(order)

        if order.table_id and self._client is not None:
            try:
                await self._client.vacate_table(order.table_id)
            except RemoteError as e:
                logger.warning("Table %s not vacated remotely: %s", order.table_id, e)

        logger.info(
            "Order %s completed: %.2f via %s", order.id, totals.final_amount, payment.method
        )
        return CheckoutResult(
            accepted=True,
            totals=totals,
            order=order,
            change=change,
            payment_confirmed=order.payment_synced,
        )

    # ── refresh ──

    async def refresh_from_remote(self) -> bool:
        """Merge the remote list of open orders into the local store.

        Deduction bookkeeping of known orders is kept. Orders with unsent
        additions keep their local copy. Orders only known
        locally (unsynced, or completed and awaiting sync) are kept, as are
        orders that still owe an inventory deduction.
        """
        if self._client is None:
            return False
        try:
            remote = await self._client.list_orders("pending", 100, 0)
        except RemoteError as e:
            logger.warning("Order refresh failed, using cached orders: %s", e)
            return False

        now = self._clock()
        local = {o.id: o for o in self._orders.all()}
        merged: list[Order] = []
        seen: set[str] = set()

        for raw in remote:
            fresh = Order.from_remote(raw)
            seen.add(fresh.id)
            known = local.get(fresh.id)
            if known is None:
                merged.append(fresh)
                continue
            if known.unsent_items:
                logger.debug("Order %s has unsent additions, keeping local copy", known.id)
                merged.append(known)
                continue
            _keep_local_additions(fresh, known)
            changed = fresh.menu_item_quantities() != known.menu_item_quantities()
            fresh.saved_at = (now if changed and known.saved_at else known.saved_at)
            fresh.ingredients_deducted = known.ingredients_deducted and not changed
            _carry_bookkeeping(fresh, known)
            fresh.order_number = fresh.order_number or known.order_number
            fresh.order_number_provisional = known.order_number_provisional
            fresh.is_self_service = known.is_self_service
            fresh.table_id = fresh.table_id or known.table_id
            merged.append(fresh)

        for order in local.values():
            if order.id in seen:
                continue
            owes_deduction = order.saved_at is not None and not order.ingredients_deducted
            local_only = not order.is_remote or bool(order.unsent_items)
            if local_only or not order.is_active or owes_deduction:
                merged.append(order)

        self._orders.save_all(merged)
        logger.info("Orders refreshed: %d remote, %d total", len(remote), len(merged))
        return True


def _keep_local_additions(fresh: Order, known: Order) -> None:
    """Keep local batches of items the remote copy has fewer of.

    Synced orders are never reduced, so a lower remote quantity means the
    remote store has not caught up with additions made on this device.
    """
    remote_qty = fresh.menu_item_quantities()
    for menu_id, local_qty in known.menu_item_quantities().items():
        if local_qty <= remote_qty.get(menu_id, 0):
            continue
        fresh.items = [i for i in fresh.items if i.id != menu_id]
        fresh.items.extend(
            replace(batch) for batch in known.items if batch.id == menu_id
        )


def _carry_bookkeeping(fresh: Order, known: Order) -> None:
    """Copy deduction bookkeeping, capped at the quantities now on the order."""
    current = fresh.menu_item_quantities()
    fresh.previous_deducted_quantities = {
        menu_id: min(qty, current[menu_id])
        for menu_id, qty in known.previous_deducted_quantities.items()
        if current.get(menu_id)
    }
    fresh.partial_deductions = {
        menu_id: {name: min(qty, current[menu_id]) for name, qty in covered.items()}
        for menu_id, covered in known.partial_deductions.items()
        if current.get(menu_id)
    }
    fresh.deducted_item_ids = {
        menu_id for menu_id in known.deducted_item_ids if menu_id in current
    }
