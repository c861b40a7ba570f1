"""Data models for orders, menu recipes, inventory and tables."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from . import units

ITEM_STATUSES: tuple[str, ...] = ("pending", "cooking", "ready", "served")
ORDER_STATUSES: tuple[str, ...] = ("pending", "completed")

# Remote ids are UUIDs; locally created ids are millisecond timestamps
_REMOTE_ID_MIN_LENGTH = 21


def is_remote_id(order_id: str | None) -> bool:
    """Return True if the id looks like one issued by the remote store."""
    return bool(order_id) and len(order_id) >= _REMOTE_ID_MIN_LENGTH


def next_status(status: str) -> str | None:
    """Return the status following ``status``, or None once served."""
    idx = ITEM_STATUSES.index(status)
    if idx + 1 < len(ITEM_STATUSES):
        return ITEM_STATUSES[idx + 1]
    return None


def status_rank(status: str) -> int:
    return ITEM_STATUSES.index(status)


def parse_timestamp(value: Any) -> float | None:
    """Parse an epoch number or ISO 8601 string into epoch seconds.

    Millisecond epochs (as written by older clients) are scaled down.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        seconds = float(value)
        return seconds / 1000.0 if seconds > 1e11 else seconds
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).timestamp()
    except ValueError:
        return None


@dataclass
class OrderLineItem:
    """One batch of a menu item on an order.

    ``id`` is the menu item id; ``sub_id`` distinguishes batches of the same
    item added by different saves.
    """

    id: str
    name: str
    price: float
    quantity: int
    is_vegetarian: bool = False
    status: str = "pending"
    status_updated_at: float | None = None
    sub_id: str | None = None
    remote_item_id: str | None = None

    @property
    def menu_item_id(self) -> str:
        return self.id

    @property
    def key(self) -> str:
        """Identifier of this batch within its order."""
        return self.sub_id or self.remote_item_id or self.id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
            "isVegetarian": self.is_vegetarian,
            "status": self.status,
            "statusUpdatedAt": self.status_updated_at,
            "subId": self.sub_id,
            "remoteItemId": self.remote_item_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> OrderLineItem:
        status = data.get("status") or "pending"
        if status not in ITEM_STATUSES:
            status = "pending"
        return cls(
            id=str(data.get("id") or data.get("menuItemId") or ""),
            name=data.get("name", ""),
            price=float(data.get("price", 0) or 0),
            quantity=int(data.get("quantity", 0) or 0),
            is_vegetarian=bool(data.get("isVegetarian", False)),
            status=status,
            status_updated_at=parse_timestamp(data.get("statusUpdatedAt")),
            sub_id=data.get("subId"),
            remote_item_id=data.get("remoteItemId"),
        )


@dataclass
class Payment:
    """Payment collected at checkout."""

    method: str  # "cash" | "upi"
    amount_received: float = 0.0
    change_returned: float = 0.0
    upi_transaction_id: str | None = None

    def to_request(self) -> dict:
        body: dict[str, Any] = {
            "payment_method": self.method,
            "amount_received": self.amount_received,
            "change_returned": self.change_returned,
        }
        if self.upi_transaction_id:
            body["upi_transaction_id"] = self.upi_transaction_id
        return body

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "amountReceived": self.amount_received,
            "changeReturned": self.change_returned,
            "upiTransactionId": self.upi_transaction_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Payment:
        return cls(
            method=data.get("method", "cash"),
            amount_received=float(data.get("amountReceived", 0) or 0),
            change_returned=float(data.get("changeReturned", 0) or 0),
            upi_transaction_id=data.get("upiTransactionId"),
        )


@dataclass
class Order:
    """An order together with its inventory deduction bookkeeping."""

    id: str
    table_number: str = ""
    customer_name: str = ""
    items: list[OrderLineItem] = field(default_factory=list)
    created_at: float = 0.0
    saved_at: float | None = None
    status: str = "pending"
    table_id: str | None = None
    order_number: int | None = None
    order_number_provisional: bool = False
    is_self_service: bool = False
    ingredients_deducted: bool = False
    deducted_item_ids: set[str] = field(default_factory=set)
    previous_deducted_quantities: dict[str, int] = field(default_factory=dict)
    # menu item id -> {ingredient: quantity covered} for items that only partly deducted
    partial_deductions: dict[str, dict[str, int]] = field(default_factory=dict)
    # additions accepted locally but not yet sent to the remote store
    unsent_items: list[dict] = field(default_factory=list)
    final_amount: float | None = None
    tax_amount: float | None = None
    discount_amount: float | None = None
    payment: Payment | None = None
    payment_synced: bool = False
    completed_at: float | None = None
    expires_at: float | None = None

    @property
    def is_remote(self) -> bool:
        return is_remote_id(self.id)

    @property
    def is_active(self) -> bool:
        return self.status != "completed"

    def quantity_of(self, menu_item_id: str) -> int:
        """Total quantity of a menu item across all of its batches."""
        return sum(i.quantity for i in self.items if i.id == menu_item_id)

    def menu_item_quantities(self) -> dict[str, int]:
        """Menu item id -> total quantity, in first-seen order."""
        totals: dict[str, int] = {}
        for item in self.items:
            totals[item.id] = totals.get(item.id, 0) + item.quantity
        return totals

    def batches_for(self, menu_item_id: str) -> list[OrderLineItem]:
        return [i for i in self.items if i.id == menu_item_id]

    def find_item(self, key: str) -> OrderLineItem | None:
        """Find a batch by its key, falling back to the first batch of a menu item."""
        for item in self.items:
            if item.key == key:
                return item
        for item in self.items:
            if item.id == key:
                return item
        return None

    def to_create_request(self) -> dict:
        """Body of ``POST /orders`` for this order, one entry per menu item."""
        request: dict[str, Any] = {
            "table_number": self.table_number,
            "customer_name": self.customer_name,
            "items": [
                {"menu_item_id": menu_id, "quantity": qty, "notes": ""}
                for menu_id, qty in self.menu_item_quantities().items()
                if qty > 0
            ],
            "notes": "",
        }
        if self.order_number is not None:
            request["order_number"] = self.order_number
        if self.table_id:
            request["table_id"] = self.table_id
        return request

    def queue_unsent(self, added: list[dict]) -> None:
        """Fold newly added request items into ``unsent_items`` by menu item."""
        for entry in added:
            for pending in self.unsent_items:
                if pending["menu_item_id"] == entry["menu_item_id"]:
                    pending["quantity"] += entry["quantity"]
                    break
            else:
                self.unsent_items.append(dict(entry))

    def to_update_request(self) -> dict:
        """Body of ``PUT /orders/{id}`` carrying the unsent additions."""
        return {
            "table_number": self.table_number,
            "customer_name": self.customer_name or None,
            "items": [dict(i) for i in self.unsent_items],
            "notes": "",
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tableNumber": self.table_number,
            "customerName": self.customer_name,
            "items": [i.to_dict() for i in self.items],
            "createdAt": self.created_at,
            "savedAt": self.saved_at,
            "status": self.status,
            "tableId": self.table_id,
            "orderNumber": self.order_number,
            "orderNumberProvisional": self.order_number_provisional,
            "isSelfService": self.is_self_service,
            "ingredientsDeducted": self.ingredients_deducted,
            "deductedItems": sorted(self.deducted_item_ids),
            "previousDeductedQuantities": dict(self.previous_deducted_quantities),
            "partialDeductions": {k: dict(v) for k, v in self.partial_deductions.items()},
            "unsentItems": [dict(i) for i in self.unsent_items],
            "finalAmount": self.final_amount,
            "taxAmount": self.tax_amount,
            "discountAmount": self.discount_amount,
            "payment": self.payment.to_dict() if self.payment else None,
            "paymentSynced": self.payment_synced,
            "completedAt": self.completed_at,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Order:
        payment = data.get("payment")
        return cls(
            id=str(data["id"]),
            table_number=str(data.get("tableNumber") or ""),
            customer_name=data.get("customerName") or "",
            items=[OrderLineItem.from_dict(i) for i in data.get("items") or []],
            created_at=parse_timestamp(data.get("createdAt")) or 0.0,
            saved_at=parse_timestamp(data.get("savedAt")),
            status=data.get("status") if data.get("status") in ORDER_STATUSES else "pending",
            table_id=data.get("tableId"),
            order_number=data.get("orderNumber"),
            order_number_provisional=bool(data.get("orderNumberProvisional", False)),
            is_self_service=bool(data.get("isSelfService", False)),
            ingredients_deducted=bool(data.get("ingredientsDeducted", False)),
            deducted_item_ids=set(data.get("deductedItems") or []),
            previous_deducted_quantities={
                str(k): int(v)
                for k, v in (data.get("previousDeductedQuantities") or {}).items()
            },
            partial_deductions={
                str(k): {str(name): int(qty) for name, qty in v.items()}
                for k, v in (data.get("partialDeductions") or {}).items()
            },
            unsent_items=[
                {
                    "menu_item_id": str(i["menu_item_id"]),
                    "quantity": int(i["quantity"]),
                    "notes": i.get("notes") or "",
                }
                for i in data.get("unsentItems") or []
            ],
            final_amount=data.get("finalAmount"),
            tax_amount=data.get("taxAmount"),
            discount_amount=data.get("discountAmount"),
            payment=Payment.from_dict(payment) if payment else None,
            payment_synced=bool(data.get("paymentSynced", False)),
            completed_at=parse_timestamp(data.get("completedAt")),
            expires_at=parse_timestamp(data.get("expiresAt")),
        )

    @classmethod
    def from_remote(cls, data: dict) -> Order:
        """Build an order from the remote store's snake_case payload."""
        items = []
        for raw in data.get("items") or []:
            menu = raw.get("menu_item") or {}
            items.append(
                OrderLineItem(
                    id=str(raw.get("menu_id") or raw.get("menu_item_id") or raw.get("id")),
                    name=menu.get("name") or raw.get("name") or "Unknown Item",
                    price=float(raw.get("unit_rate", 0) or 0),
                    quantity=int(raw.get("quantity", 0) or 0),
                    is_vegetarian=bool(menu.get("is_vegetarian", False)),
                    status=raw.get("status") if raw.get("status") in ITEM_STATUSES else "pending",
                    remote_item_id=str(raw["id"]) if raw.get("id") else None,
                )
            )
        table_number = data.get("table_number")
        return cls(
            id=str(data["id"]),
            table_number=str(table_number) if table_number else "",
            customer_name=data.get("customer_name") or "",
            items=items,
            created_at=parse_timestamp(data.get("created_at")) or 0.0,
            status="completed" if data.get("status") == "completed" else "pending",
            table_id=data.get("table_id"),
            order_number=data.get("order_number") or None,
            final_amount=data.get("total"),
            tax_amount=data.get("tax_amount"),
            completed_at=parse_timestamp(data.get("completed_at")),
        )


@dataclass
class IngredientRequirement:
    """Quantity of one ingredient used per unit of a menu item sold."""

    name: str
    unit: str
    quantity_used: float

    def to_dict(self) -> dict:
        return {"name": self.name, "unit": self.unit, "quantityUsed": self.quantity_used}

    @classmethod
    def from_dict(cls, data: dict) -> IngredientRequirement:
        qty = data.get("quantityUsed", data.get("quantity_used", data.get("quantity", 0)))
        return cls(
            name=data.get("name", ""),
            unit=data.get("unit", ""),
            quantity_used=float(qty or 0),
        )


@dataclass
class MenuItem:
    """A menu item and its recipe."""

    id: str
    name: str
    price: float = 0.0
    category: str = ""
    is_vegetarian: bool = False
    is_available: bool = True
    ingredients: list[IngredientRequirement] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "category": self.category,
            "isVegetarian": self.is_vegetarian,
            "isAvailable": self.is_available,
            "ingredients": [i.to_dict() for i in self.ingredients],
        }

    @classmethod
    def from_dict(cls, data: dict) -> MenuItem:
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            price=float(data.get("price", 0) or 0),
            category=data.get("category", ""),
            is_vegetarian=bool(data.get("isVegetarian", data.get("is_veg", False))),
            is_available=bool(data.get("isAvailable", data.get("is_available", True))),
            ingredients=[
                IngredientRequirement.from_dict(i) for i in data.get("ingredients") or []
            ],
        )


@dataclass
class InventoryRecord:
    """Stock of one ingredient.

    ``current_stock`` and ``full_stock`` are held in the base unit of the
    record's unit group; ``unit`` is the unit used for display.
    """

    name: str
    unit: str
    current_stock: float
    full_stock: float
    id: str | None = None

    @property
    def group(self) -> str:
        return units.unit_group(self.unit)

    def matches(self, name: str, unit: str) -> bool:
        """Case-insensitive name match within the same unit group."""
        return self.name.lower() == name.lower() and units.same_group(self.unit, unit)

    def display_stock(self) -> float:
        return units.from_base(self.current_stock, self.unit)

    def stock_percentage(self) -> float | None:
        if self.full_stock <= 0:
            return None
        return self.current_stock / self.full_stock * 100

    def is_low_stock(self) -> bool:
        pct = self.stock_percentage()
        return pct is not None and pct <= 15

    def warning_level(self) -> str:
        """Return "GREEN", "YELLOW" (<= 15%) or "RED" (<= 5%)."""
        pct = self.stock_percentage()
        if pct is None:
            return "GREEN"
        if pct <= 5:
            return "RED"
        if pct <= 15:
            return "YELLOW"
        return "GREEN"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "currentStock": self.current_stock,
            "fullStock": self.full_stock,
        }

    @classmethod
    def from_dict(cls, data: dict) -> InventoryRecord:
        return cls(
            name=data["name"],
            unit=data["unit"],
            current_stock=float(data.get("currentStock", data.get("current_stock", 0)) or 0),
            full_stock=float(data.get("fullStock", data.get("full_stock", 0)) or 0),
            id=data.get("id"),
        )


@dataclass
class Table:
    id: str
    name: str = ""
    is_occupied: bool = False
    current_order_id: str | None = None
    capacity: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_occupied": self.is_occupied,
            "current_order_id": self.current_order_id,
            "capacity": self.capacity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Table:
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            is_occupied=bool(data.get("is_occupied", False)),
            current_order_id=data.get("current_order_id"),
            capacity=data.get("capacity"),
        )
