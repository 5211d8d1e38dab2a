from decimal import Decimal

import pytest

from apps.units import Quantity, Unit
from apps.units.exceptions import IncompatibleUnitsError, InvalidQuantityError


class TestQuantityInvariants:
    """Construction rules for Quantity."""

    def test_negative_amount_rejected(self):
        """Quantities are never negative."""
        with pytest.raises(InvalidQuantityError):
            Quantity(Decimal('-1'), Unit.LITER)

    def test_abv_out_of_range_rejected(self):
        """ABV must be a percentage."""
        with pytest.raises(InvalidQuantityError):
            Quantity.liters('10', abv='120')

    def test_abv_on_mass_rejected(self):
        """Only volumes carry an alcohol concentration."""
        with pytest.raises(InvalidQuantityError):
            Quantity(Decimal('10'), Unit.KILOGRAM, Decimal('5'))

    def test_coerces_strings_and_aliases(self):
        """Amounts and unit aliases are normalised on construction."""
        quantity = Quantity('12.5', 'gallons')
        assert quantity.amount == Decimal('12.5')
        assert quantity.unit == Unit.GALLON

    def test_is_immutable(self):
        """Quantity is a frozen value type."""
        quantity = Quantity.liters('10')
        with pytest.raises(AttributeError):
            quantity.amount = Decimal('5')


class TestQuantityConversions:
    """Conversions between units."""

    def test_to_gallons_keeps_abv(self):
        quantity = Quantity.liters('3.785411784', abv='6.5').to(Unit.GALLON)
        assert quantity.amount == Decimal('1')
        assert quantity.abv == Decimal('6.5')

    def test_in_liters(self):
        assert Quantity('2', Unit.GALLON).in_liters() == Decimal('7.570823568')

    def test_in_liters_rejects_mass(self):
        with pytest.raises(IncompatibleUnitsError):
            Quantity('2', Unit.POUND).in_liters()

    def test_in_kg_from_bushels(self):
        assert Quantity('10', Unit.BUSHEL).in_kg() == Decimal('181.4')

    def test_canonical_unit(self):
        """Volumes normalise to liters and masses to kilograms."""
        assert Quantity('1000', Unit.MILLILITER).canonical() == Quantity(Decimal('1'), Unit.LITER)
        assert Quantity('1', Unit.KILOGRAM).canonical().unit == Unit.KILOGRAM

    def test_proof_gallons(self):
        assert Quantity('1', Unit.GALLON, '50').proof_gallons() == Decimal('1')

    def test_proof_gallons_require_abv(self):
        with pytest.raises(InvalidQuantityError):
            Quantity.liters('10').proof_gallons()


class TestQuantityArithmetic:
    """Addition, subtraction and comparison."""

    def test_add_across_units_uses_left_unit(self):
        total = Quantity.liters('1') + Quantity('1000', Unit.MILLILITER)
        assert total.unit == Unit.LITER
        assert total.amount == Decimal('2')

    def test_subtract_below_zero_raises(self):
        """Subtraction cannot produce a negative quantity."""
        with pytest.raises(InvalidQuantityError):
            Quantity.liters('1') - Quantity.liters('2')

    def test_mixed_dimensions_raise(self):
        with pytest.raises(IncompatibleUnitsError):
            Quantity.liters('1') + Quantity('1', Unit.KILOGRAM)

    def test_comparison_across_units(self):
        assert Quantity('1', Unit.GALLON) > Quantity.liters('3.7')
        assert Quantity.liters('150') < Quantity.liters('200')

    def test_zero(self):
        assert Quantity.zero().is_zero
        assert not Quantity.liters('0.001').is_zero


class TestQuantitySerialisation:
    """Dictionary representation used by the API and audit snapshots."""

    def test_as_dict(self):
        assert Quantity.liters('20', abv='55').as_dict() == {
            'amount': '20',
            'unit': 'L',
            'abv': '55',
        }

    def test_from_dict_restores_value(self):
        original = Quantity('5.5', Unit.GALLON, '6')
        assert Quantity.from_dict(original.as_dict()) == original

    def test_with_abv_returns_new_instance(self):
        base = Quantity.liters('10')
        strong = base.with_abv('40')
        assert base.abv is None
        assert strong.abv == Decimal('40')
