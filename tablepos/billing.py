"""Bill totals for an order."""

from __future__ import annotations

from dataclasses import dataclass

from .models import OrderLineItem

TAX_RATE = 0.05


@dataclass
class ConsolidatedItem:
    """All batches of one dish shown as a single bill line."""

    name: str
    price: float
    quantity: int

    @property
    def amount(self) -> float:
        return self.price * self.quantity


@dataclass
class OrderTotals:
    subtotal: float
    tax: float
    discount: float
    final_amount: float


def consolidate(items: list[OrderLineItem]) -> list[ConsolidatedItem]:
    """Group line items by display name, summing their quantities."""
    lines: dict[str, ConsolidatedItem] = {}
    for item in items:
        line = lines.get(item.name)
        if line is None:
            lines[item.name] = ConsolidatedItem(item.name, item.price, item.quantity)
        else:
            line.quantity += item.quantity
    return list(lines.values())


def calculate_totals(
    items: list[OrderLineItem],
    discount: float | str = 0,
    discount_type: str = "amount",
    tax_rate: float = TAX_RATE,
) -> OrderTotals:
    """Compute subtotal, tax, discount and the amount due.

    Args:
        items: Line items of the order; batches of one dish are merged.
        discount: Flat amount or percentage, as entered by staff.
        discount_type: "amount" or "percentage".
        tax_rate: Fraction of the subtotal charged as tax.

    Raises:
        ValueError: If ``discount_type`` is not recognised.
    """
    subtotal = sum(line.amount for line in consolidate(items))

    if isinstance(discount, str):
        try:
            discount = float(discount) if discount.strip() else 0.0
        except ValueError:
            discount = 0.0

    if discount_type == "percentage":
        discount_value = subtotal * discount / 100
    elif discount_type == "amount":
        discount_value = float(discount)
    else:
        raise ValueError(f"unknown discount type: {discount_type!r}")
    discount_value = max(discount_value, 0.0)

    tax = subtotal * tax_rate
    return OrderTotals(
        subtotal=round(subtotal, 2),
        tax=round(tax, 2),
        discount=round(discount_value, 2),
        final_amount=round(subtotal + tax - discount_value, 2),
    )


def change_due(amount_received: float, final_amount: float) -> float:
    """Change to hand back for a cash payment; negative means too little cash."""
    return round(amount_received - final_amount, 2)
