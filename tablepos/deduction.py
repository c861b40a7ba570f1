"""Delta-based inventory deduction for orders."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from . import units
from .catalog import MenuCatalog
from .db.repositories import InventoryRepository
from .errors import UnitError
from .models import IngredientRequirement, Order

logger = logging.getLogger(__name__)


@dataclass
class IngredientFailure:
    """One ingredient that could not be deducted."""

    menu_item_id: str
    ingredient: str
    reason: str  # "unmanaged" | "unit_mismatch" | "insufficient_stock"
    needed: float
    available: float | None = None


@dataclass
class DeductionResult:
    order_id: str
    deducted_items: list[str] = field(default_factory=list)
    failed_items: list[str] = field(default_factory=list)
    skipped_items: list[str] = field(default_factory=list)
    failures: list[IngredientFailure] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return not self.failed_items


class DeductionEngine:
    """Subtracts the ingredients of newly ordered quantities from stock.

    Only the quantity added since the last successful deduction of a menu
    item is deducted, so running the engine again on an unchanged order is
    a no-op and running it after a quantity increase deducts only the
    increase. Failures are per ingredient: the rest of the order proceeds
    and the failed item stays eligible for a later retry.
    """

    def __init__(self, catalog: MenuCatalog, inventory: InventoryRepository) -> None:
        self._catalog = catalog
        self._inventory = inventory

    def process(self, order: Order) -> DeductionResult:
        """Deduct stock for ``order`` and update its bookkeeping in place.

        The caller is responsible for persisting the order afterwards.
        """
        result = DeductionResult(order_id=order.id)
        logger.debug("Deducting inventory for order %s", order.id)

        for menu_item_id, current_qty in order.menu_item_quantities().items():
            recipe = self._catalog.get(menu_item_id)
            if recipe is None or not recipe.ingredients:
                logger.warning(
                    "Order %s: menu item %s has no recipe, skipping",
                    order.id,
                    menu_item_id,
                )
                result.skipped_items.append(menu_item_id)
                continue

            previous_qty = order.previous_deducted_quantities.get(menu_item_id, 0)
            if current_qty - previous_qty <= 0:
                order.previous_deducted_quantities[menu_item_id] = current_qty
                order.deducted_item_ids.add(menu_item_id)
                order.partial_deductions.pop(menu_item_id, None)
                continue

            partial = order.partial_deductions.get(menu_item_id, {})
            item_ok = True
            for ingredient in recipe.ingredients:
                key = ingredient.name.lower()
                covered = max(previous_qty, partial.get(key, previous_qty))
                delta = current_qty - covered
                if delta <= 0:
                    continue
                failure = self._deduct_ingredient(menu_item_id, ingredient, delta)
                if failure is None:
                    partial[key] = current_qty
                else:
                    item_ok = False
                    result.failures.append(failure)

            if item_ok:
                order.previous_deducted_quantities[menu_item_id] = current_qty
                order.deducted_item_ids.add(menu_item_id)
                order.partial_deductions.pop(menu_item_id, None)
                result.deducted_items.append(menu_item_id)
            else:
                if partial:
                    order.partial_deductions[menu_item_id] = partial
                result.failed_items.append(menu_item_id)

        order.ingredients_deducted = result.completed
        if result.completed:
            logger.info("Order %s: inventory deduction complete", order.id)
        else:
            logger.warning(
                "Order %s: deduction incomplete for %s",
                order.id,
                ", ".join(result.failed_items),
            )
        return result

    def _deduct_ingredient(
        self, menu_item_id: str, ingredient: IngredientRequirement, sold_qty: int
    ) -> IngredientFailure | None:
        amount = ingredient.quantity_used * sold_qty
        if amount <= 0:
            return None

        try:
            needed = units.to_base(amount, ingredient.unit)
        except UnitError:
            logger.warning(
                "Unknown unit %r for ingredient %s", ingredient.unit, ingredient.name
            )
            return IngredientFailure(menu_item_id, ingredient.name, "unit_mismatch", amount)

        record = self._inventory.find(ingredient.name, ingredient.unit)
        if record is None:
            if self._inventory.find_by_name(ingredient.name):
                logger.warning(
                    "Ingredient %s: stock is not measured in the %s group, rejecting",
                    ingredient.name,
                    ingredient.unit,
                )
                return IngredientFailure(
                    menu_item_id, ingredient.name, "unit_mismatch", needed
                )
            logger.warning("Ingredient %s not found in inventory", ingredient.name)
            return IngredientFailure(menu_item_id, ingredient.name, "unmanaged", needed)

        if record.current_stock < needed:
            logger.warning(
                "Insufficient stock for %s: have %s, need %s",
                ingredient.name,
                record.current_stock,
                needed,
            )
            return IngredientFailure(
                menu_item_id,
                ingredient.name,
                "insufficient_stock",
                needed,
                record.current_stock,
            )

        before = record.current_stock
        record.current_stock = before - needed
        self._inventory.save(record)
        logger.debug(
            "Deducted %s %s of %s: %s -> %s",
            needed,
            units.base_unit(record.unit),
            ingredient.name,
            before,
            record.current_stock,
        )
        return None
