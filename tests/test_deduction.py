"""Tests for delta-based inventory deduction."""

import pytest

from tablepos.catalog import MenuCatalog
from tablepos.db import InventoryRepository, MemoryStore, MenuRepository
from tablepos.deduction import DeductionEngine
from tablepos.models import IngredientRequirement, InventoryRecord, MenuItem, Order, OrderLineItem


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def inventory(store):
    repo = InventoryRepository(store)
    repo.save_all([
        InventoryRecord("Rice", "kilograms", 10000, 20000),
        InventoryRecord("Lentils", "grams", 2000, 5000),
        InventoryRecord("Ghee", "milliliters", 500, 1000),
        InventoryRecord("Saffron", "grams", 10, 100),
    ])
    return repo


@pytest.fixture
def catalog(store):
    catalog = MenuCatalog(MenuRepository(store))
    catalog.load([
        MenuItem(
            id="biryani",
            name="Biryani",
            price=250,
            ingredients=[
                IngredientRequirement("rice", "kilograms", 0.2),
                IngredientRequirement("Ghee", "ml", 15),
            ],
        ),
        MenuItem(
            id="dal",
            name="Dal",
            price=120,
            ingredients=[IngredientRequirement("Lentils", "grams", 100)],
        ),
        MenuItem(
            id="kesar",
            name="Kesar Kheer",
            price=150,
            ingredients=[
                IngredientRequirement("Saffron", "grams", 15),
                IngredientRequirement("Rice", "grams", 50),
            ],
        ),
        MenuItem(id="water", name="Water", price=20),
    ])
    return catalog


@pytest.fixture
def engine(catalog, inventory):
    return DeductionEngine(catalog, inventory)


def _order(*lines):
    items = [
        OrderLineItem(id=menu_id, name=menu_id, price=10, quantity=qty, sub_id=f"{menu_id}-{i}")
        for i, (menu_id, qty) in enumerate(lines)
    ]
    return Order(id="1718000000000", items=items, saved_at=0.0)


def _stock(inventory, name, unit):
    return inventory.find(name, unit).current_stock


class TestDeduction:
    def test_deducts_recipe_quantities(self, engine, inventory):
        order = _order(("dal", 3))
        result = engine.process(order)
        assert result.completed
        assert _stock(inventory, "Lentils", "grams") == 1700
        assert order.ingredients_deducted
        assert order.previous_deducted_quantities == {"dal": 3}
        assert order.deducted_item_ids == {"dal"}

    def test_idempotent(self, engine, inventory):
        order = _order(("dal", 3), ("biryani", 1))
        engine.process(order)
        snapshot = [r.to_dict() for r in inventory.all()]
        bookkeeping = dict(order.previous_deducted_quantities)

        result = engine.process(order)
        assert result.completed
        assert [r.to_dict() for r in inventory.all()] == snapshot
        assert order.previous_deducted_quantities == bookkeeping

    def test_only_delta_deducted(self, engine, inventory):
        order = _order(("dal", 3))
        engine.process(order)
        order.items[0].quantity = 5
        engine.process(order)
        # 3 + 2 units, never 3 + 5
        assert _stock(inventory, "Lentils", "grams") == 1500
        assert order.previous_deducted_quantities["dal"] == 5

    def test_delta_counts_all_batches(self, engine, inventory):
        order = _order(("dal", 3))
        engine.process(order)
        order.items.append(
            OrderLineItem(id="dal", name="dal", price=10, quantity=2, sub_id="dal-later")
        )
        engine.process(order)
        assert _stock(inventory, "Lentils", "grams") == 1500

    def test_unit_conversion_to_base(self, engine, inventory):
        engine.process(_order(("biryani", 2)))
        # 0.2 kg x 2 = 400 g from a record stored in grams
        assert _stock(inventory, "Rice", "kilograms") == 9600
        assert _stock(inventory, "Ghee", "milliliters") == 470

    def test_half_kilo_reduces_by_500_grams(self, store, inventory):
        catalog = MenuCatalog(MenuRepository(store))
        catalog.load([
            MenuItem(id="pulao", name="Pulao", ingredients=[IngredientRequirement("Rice", "kg", 0.5)])
        ])
        DeductionEngine(catalog, inventory).process(_order(("pulao", 1)))
        assert _stock(inventory, "Rice", "grams") == 9500

    def test_incompatible_unit_rejected(self, store, inventory):
        catalog = MenuCatalog(MenuRepository(store))
        catalog.load([
            MenuItem(id="x", name="X", ingredients=[IngredientRequirement("Rice", "liters", 1)])
        ])
        order = _order(("x", 1))
        result = DeductionEngine(catalog, inventory).process(order)
        assert result.failures[0].reason == "unit_mismatch"
        assert _stock(inventory, "Rice", "grams") == 10000
        assert not order.ingredients_deducted

    def test_unknown_unit_rejected(self, store, inventory):
        catalog = MenuCatalog(MenuRepository(store))
        catalog.load([
            MenuItem(id="x", name="X", ingredients=[IngredientRequirement("Rice", "handfuls", 1)])
        ])
        result = DeductionEngine(catalog, inventory).process(_order(("x", 1)))
        assert result.failures[0].reason == "unit_mismatch"

    def test_insufficient_stock_is_per_item(self, engine, inventory):
        order = _order(("kesar", 1), ("dal", 1))
        result = engine.process(order)

        assert result.failed_items == ["kesar"]
        assert result.deducted_items == ["dal"]
        failure = next(f for f in result.failures if f.ingredient == "Saffron")
        assert failure.reason == "insufficient_stock"
        assert failure.available == 10
        assert _stock(inventory, "Saffron", "grams") == 10
        assert _stock(inventory, "Lentils", "grams") == 1900
        assert "kesar" not in order.deducted_item_ids
        assert "kesar" not in order.previous_deducted_quantities
        assert not order.ingredients_deducted

    def test_retry_does_not_repeat_sibling_ingredients(self, engine, inventory):
        order = _order(("kesar", 1))
        engine.process(order)
        # Rice succeeded on the first pass; saffron did not
        assert _stock(inventory, "Rice", "grams") == 9950

        saffron = inventory.find("Saffron", "grams")
        saffron.current_stock = 100
        inventory.save(saffron)

        result = engine.process(order)
        assert result.completed
        assert _stock(inventory, "Rice", "grams") == 9950
        assert _stock(inventory, "Saffron", "grams") == 85
        assert order.partial_deductions == {}

    def test_unmanaged_ingredient(self, store, inventory):
        catalog = MenuCatalog(MenuRepository(store))
        catalog.load([
            MenuItem(id="x", name="X", ingredients=[IngredientRequirement("Truffle", "grams", 1)])
        ])
        result = DeductionEngine(catalog, inventory).process(_order(("x", 1)))
        assert result.failures[0].reason == "unmanaged"

    def test_items_without_recipe_are_skipped(self, engine):
        order = _order(("water", 2), ("unknown", 1), ("dal", 1))
        result = engine.process(order)
        assert set(result.skipped_items) == {"water", "unknown"}
        assert result.completed
        assert order.ingredients_deducted

    def test_reduced_quantity_records_current(self, engine, inventory):
        order = _order(("dal", 3))
        engine.process(order)
        order.items[0].quantity = 2
        engine.process(order)
        assert _stock(inventory, "Lentils", "grams") == 1700
        assert order.previous_deducted_quantities["dal"] == 2
