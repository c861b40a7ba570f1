"""Tests for ingredient unit conversion."""

import pytest

from tablepos import units
from tablepos.errors import UnitError, UnitMismatchError


class TestUnitGroups:
    def test_weight_group(self):
        assert units.unit_group("grams") == "weight"
        assert units.unit_group("kilograms") == "weight"

    def test_volume_group(self):
        assert units.unit_group("milliliters") == "volume"
        assert units.unit_group("liters") == "volume"

    def test_count_group_includes_spoons(self):
        for unit in ("pieces", "cups", "tablespoons", "teaspoons"):
            assert units.unit_group(unit) == "count"

    def test_aliases(self):
        assert units.normalize_unit("KG") == "kilograms"
        assert units.normalize_unit(" tbsp ") == "tablespoons"
        assert units.unit_group("ml") == "volume"

    def test_unknown_unit_raises(self):
        with pytest.raises(UnitError):
            units.unit_group("bushels")

    def test_same_group(self):
        assert units.same_group("grams", "kg")
        assert not units.same_group("grams", "liters")
        assert not units.same_group("grams", "bushels")

    def test_base_unit(self):
        assert units.base_unit("kg") == "grams"
        assert units.base_unit("liters") == "milliliters"
        assert units.base_unit("cups") == "pieces"


class TestConversion:
    def test_kilograms_to_base(self):
        assert units.to_base(0.5, "kilograms") == 500

    def test_liters_to_base(self):
        assert units.to_base(2, "l") == 2000

    def test_spoon_constants(self):
        assert units.to_base(1, "cups") == pytest.approx(236.588)
        assert units.to_base(1, "tablespoons") == pytest.approx(14.787)
        assert units.to_base(1, "teaspoons") == pytest.approx(4.929)

    def test_from_base(self):
        assert units.from_base(1500, "kilograms") == pytest.approx(1.5)

    def test_convert_within_group(self):
        assert units.convert(250, "grams", "kilograms") == pytest.approx(0.25)

    def test_convert_across_groups_rejected(self):
        with pytest.raises(UnitMismatchError):
            units.convert(1, "grams", "milliliters")

    def test_mismatch_is_a_value_error(self):
        with pytest.raises(ValueError):
            units.convert(1, "liters", "pieces")
