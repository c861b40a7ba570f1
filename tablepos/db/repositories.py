"""Per-entity repositories on top of a LocalStore."""

from __future__ import annotations

from ..errors import OrderNotFoundError
from ..models import InventoryRecord, MenuItem, Order, Table
from .store import LocalStore

ORDERS = "orders"
INVENTORY = "inventory"
MENU = "menu"
TABLES = "tables"
ORDER_NUMBER = "order_number"
AUTH = "auth"


class OrderRepository:
    """Locally known orders, including the offline sync queue."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def all(self) -> list[Order]:
        return [Order.from_dict(o) for o in self._store.get(ORDERS, []) if o.get("id")]

    def get(self, order_id: str) -> Order | None:
        for order in self.all():
            if order.id == order_id:
                return order
        return None

    def require(self, order_id: str) -> Order:
        order = self.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def active(self) -> list[Order]:
        return [o for o in self.all() if o.is_active]

    def save(self, order: Order) -> None:
        """Insert or replace an order, keeping its position in the list."""
        raw = self._store.get(ORDERS, [])
        data = order.to_dict()
        for idx, existing in enumerate(raw):
            if existing.get("id") == order.id:
                raw[idx] = data
                break
        else:
            raw.append(data)
        self._store.set(ORDERS, raw)

    def save_all(self, orders: list[Order]) -> None:
        self._store.set(ORDERS, [o.to_dict() for o in orders])

    def remove(self, order_id: str) -> bool:
        raw = self._store.get(ORDERS, [])
        kept = [o for o in raw if o.get("id") != order_id]
        if len(kept) == len(raw):
            return False
        self._store.set(ORDERS, kept)
        return True

    def replace_id(self, old_id: str, new_id: str) -> Order | None:
        """Re-key an order after the remote store issued its own id."""
        raw = self._store.get(ORDERS, [])
        for existing in raw:
            if existing.get("id") == old_id:
                existing["id"] = new_id
                self._store.set(ORDERS, raw)
                return Order.from_dict(existing)
        return None


class InventoryRepository:
    """Ingredient stock records keyed by case-insensitive name."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def all(self) -> list[InventoryRecord]:
        return [InventoryRecord.from_dict(r) for r in self._store.get(INVENTORY, [])]

    def find_by_name(self, name: str) -> list[InventoryRecord]:
        return [r for r in self.all() if r.name.lower() == name.lower()]

    def find(self, name: str, unit: str) -> InventoryRecord | None:
        """Return the record for ``name`` whose unit is in the same group as ``unit``."""
        for record in self.all():
            if record.matches(name, unit):
                return record
        return None

    def save(self, record: InventoryRecord) -> None:
        raw = self._store.get(INVENTORY, [])
        data = record.to_dict()
        for idx, existing in enumerate(raw):
            if InventoryRecord.from_dict(existing).matches(record.name, record.unit):
                raw[idx] = data
                break
        else:
            raw.append(data)
        self._store.set(INVENTORY, raw)

    def save_all(self, records: list[InventoryRecord]) -> None:
        self._store.set(INVENTORY, [r.to_dict() for r in records])


class MenuRepository:
    """Cached copy of the remote menu."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def items(self) -> list[MenuItem]:
        return [MenuItem.from_dict(i) for i in self._store.get(MENU, [])]

    def save_items(self, items: list[MenuItem]) -> None:
        self._store.set(MENU, [i.to_dict() for i in items])


class TableRepository:
    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def all(self) -> list[Table]:
        return [Table.from_dict(t) for t in self._store.get(TABLES, [])]

    def get(self, table_id: str) -> Table | None:
        for table in self.all():
            if table.id == table_id:
                return table
        return None

    def save(self, table: Table) -> None:
        raw = self._store.get(TABLES, [])
        data = table.to_dict()
        for idx, existing in enumerate(raw):
            if str(existing.get("id")) == table.id:
                raw[idx] = data
                break
        else:
            raw.append(data)
        self._store.set(TABLES, raw)

    def save_all(self, tables: list[Table]) -> None:
        self._store.set(TABLES, [t.to_dict() for t in tables])


class CounterRepository:
    """Date-stamped local order-number counter."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def read(self) -> tuple[int, str | None]:
        """Return (counter, ISO date the counter belongs to)."""
        raw = self._store.get(ORDER_NUMBER, {}) or {}
        try:
            counter = int(raw.get("counter", 0))
        except (TypeError, ValueError):
            counter = 0
        return counter, raw.get("date")

    def write(self, counter: int, day: str) -> None:
        self._store.set(ORDER_NUMBER, {"counter": counter, "date": day})

    def reset(self) -> None:
        self._store.delete(ORDER_NUMBER)


class TokenRepository:
    """Access and refresh tokens of the signed-in user."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def access_token(self) -> str | None:
        return (self._store.get(AUTH, {}) or {}).get("access_token")

    def refresh_token(self) -> str | None:
        return (self._store.get(AUTH, {}) or {}).get("refresh_token")

    def save(self, access_token: str, refresh_token: str | None = None) -> None:
        data = self._store.get(AUTH, {}) or {}
        data["access_token"] = access_token
        if refresh_token:
            data["refresh_token"] = refresh_token
        self._store.set(AUTH, data)

    def clear(self) -> None:
        self._store.delete(AUTH)
