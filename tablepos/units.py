"""Ingredient unit conversion between compatible unit groups."""

from __future__ import annotations

from .errors import UnitError, UnitMismatchError

# Unit groups; the first entry of each group is its base unit
_UNIT_GROUPS: dict[str, tuple[str, ...]] = {
    "weight": ("grams", "kilograms"),
    "volume": ("milliliters", "liters"),
    "count": ("pieces", "cups", "tablespoons", "teaspoons"),
}

# Multiplier to the base unit of the group
_TO_BASE: dict[str, float] = {
    "grams": 1.0,
    "kilograms": 1000.0,
    "milliliters": 1.0,
    "liters": 1000.0,
    "pieces": 1.0,
    "cups": 236.588,
    "tablespoons": 14.787,
    "teaspoons": 4.929,
}

# Short spellings seen in menu and inventory records
_ALIASES: dict[str, str] = {
    "g": "grams",
    "gram": "grams",
    "kg": "kilograms",
    "kilogram": "kilograms",
    "ml": "milliliters",
    "milliliter": "milliliters",
    "l": "liters",
    "liter": "liters",
    "litre": "liters",
    "litres": "liters",
    "pc": "pieces",
    "pcs": "pieces",
    "piece": "pieces",
    "cup": "cups",
    "tbsp": "tablespoons",
    "tablespoon": "tablespoons",
    "tsp": "teaspoons",
    "teaspoon": "teaspoons",
}

BASE_UNITS: dict[str, str] = {group: units[0] for group, units in _UNIT_GROUPS.items()}


def normalize_unit(unit: str) -> str:
    """Return the canonical spelling of a unit.

    Raises:
        UnitError: If the unit is not known.
    """
    key = unit.strip().lower()
    key = _ALIASES.get(key, key)
    if key not in _TO_BASE:
        raise UnitError(f"unknown unit: {unit!r}")
    return key


def unit_group(unit: str) -> str:
    """Return the group name ("weight", "volume" or "count") of a unit."""
    canonical = normalize_unit(unit)
    for group, units in _UNIT_GROUPS.items():
        if canonical in units:
            return group
    raise UnitError(f"unit {unit!r} has no group")  # pragma: no cover


def base_unit(unit: str) -> str:
    """Return the base unit of the group a unit belongs to."""
    return BASE_UNITS[unit_group(unit)]


def same_group(unit_a: str, unit_b: str) -> bool:
    """Check whether two units can be compared or combined.

    Unknown units are never in the same group as anything.
    """
    try:
        return unit_group(unit_a) == unit_group(unit_b)
    except UnitError:
        return False


def to_base(value: float, unit: str) -> float:
    """Convert a value in ``unit`` to the base unit of its group.

    Args:
        value: Amount expressed in ``unit``.
        unit: Unit name or alias, e.g. "kilograms" or "kg".

    Returns:
        The amount in grams, milliliters or pieces.
    """
    return value * _TO_BASE[normalize_unit(unit)]


def from_base(value: float, unit: str) -> float:
    """Convert a base-unit value back into ``unit``."""
    return value / _TO_BASE[normalize_unit(unit)]


def convert(value: float, from_unit: str, to_unit: str) -> float:
    """Convert between two units of the same group.

    Raises:
        UnitMismatchError: If the units belong to different groups.
    """
    if not same_group(from_unit, to_unit):
        raise UnitMismatchError(
            f"cannot convert {from_unit!r} to {to_unit!r}: different unit groups"
        )
    return from_base(to_base(value, from_unit), to_unit)
