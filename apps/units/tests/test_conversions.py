"""
Tests for unit conversion helpers.

Tests cover:
- Same-dimension conversions and round trips
- Cross-dimension conversions with and without density
- Unit aliases
- ABV / proof / proof gallon helpers
"""

from decimal import Decimal

import pytest

from apps.units.conversions import (
    Unit,
    abv_to_proof,
    convert,
    liters_to_wine_gallons,
    parse_unit,
    proof_gallons,
    proof_to_abv,
    quantize_volume,
    wine_gallons_to_liters,
)
from apps.units.exceptions import IncompatibleUnitsError, InvalidQuantityError, UnknownUnitError


VOLUME_UNITS = [Unit.LITER, Unit.MILLILITER, Unit.GALLON]
MASS_UNITS = [Unit.KILOGRAM, Unit.POUND, Unit.BUSHEL]


class TestConvert:
    """Tests for convert()."""

    def test_liters_to_gallons(self):
        """One US gallon is exactly 3.785411784 liters."""
        assert convert(Decimal('3.785411784'), Unit.LITER, Unit.GALLON) == Decimal('1')

    def test_gallons_to_liters(self):
        """Gallon to liter conversion is exact."""
        assert convert(Decimal('10'), 'gal', 'L') == Decimal('37.85411784')

    def test_same_unit_is_identity(self):
        """Converting to the same unit returns the amount unchanged."""
        assert convert(Decimal('12.345'), Unit.LITER, Unit.LITER) == Decimal('12.345')

    def test_pounds_to_kilograms(self):
        """Pounds convert through the exact kilogram definition."""
        assert convert(Decimal('100'), Unit.POUND, Unit.KILOGRAM) == Decimal('45.359237')

    def test_bushel_to_kilograms(self):
        """An apple bushel is 18.14 kg."""
        assert convert(Decimal('2'), Unit.BUSHEL, Unit.KILOGRAM) == Decimal('36.28')

    @pytest.mark.parametrize('amount', ['0', '0.001', '1', '987.654', '125000'])
    def test_volume_round_trip(self, amount):
        """Converting there and back stays within 0.001 for every volume pair."""
        value = Decimal(amount)
        for source in VOLUME_UNITS:
            for target in VOLUME_UNITS:
                back = convert(convert(value, source, target), target, source)
                assert abs(back - value) <= Decimal('0.001')

    def test_mass_round_trip(self):
        """Mass conversions round trip within tolerance."""
        value = Decimal('1234.567')
        for source in MASS_UNITS:
            for target in MASS_UNITS:
                back = convert(convert(value, source, target), target, source)
                assert abs(back - value) <= Decimal('0.001')

    def test_repeated_conversions_do_not_drift(self):
        """Many round trips through gallons keep the value stable at ledger precision."""
        value = Decimal('1000')
        for _ in range(50):
            value = convert(convert(value, Unit.LITER, Unit.GALLON), Unit.GALLON, Unit.LITER)
        assert quantize_volume(value) == Decimal('1000.000')

    def test_volume_to_mass_without_density_fails(self):
        """Crossing dimensions without a density raises IncompatibleUnitsError."""
        with pytest.raises(IncompatibleUnitsError):
            convert(Decimal('10'), Unit.LITER, Unit.KILOGRAM)

    def test_volume_to_mass_with_density(self):
        """Juice at 1.05 kg/L: 100 L weighs 105 kg."""
        assert convert(Decimal('100'), Unit.LITER, Unit.KILOGRAM, density=Decimal('1.05')) == Decimal('105')

    def test_mass_to_volume_with_density(self):
        """Mass divides by density when converting to volume."""
        assert convert(Decimal('105'), Unit.KILOGRAM, Unit.LITER, density='1.05') == Decimal('100')

    def test_non_positive_density_rejected(self):
        """A zero density is not a usable conversion factor."""
        with pytest.raises(IncompatibleUnitsError):
            convert(Decimal('1'), Unit.LITER, Unit.KILOGRAM, density=0)

    def test_unknown_unit(self):
        """Unknown units raise UnknownUnitError."""
        with pytest.raises(UnknownUnitError):
            convert(Decimal('1'), 'hogshead', Unit.LITER)


class TestParseUnit:
    """Tests for parse_unit()."""

    @pytest.mark.parametrize('alias,expected', [
        ('L', Unit.LITER),
        ('liters', Unit.LITER),
        ('Litres', Unit.LITER),
        ('ml', Unit.MILLILITER),
        ('gallons', Unit.GALLON),
        ('lbs', Unit.POUND),
        ('bu', Unit.BUSHEL),
        (' kg ', Unit.KILOGRAM),
    ])
    def test_aliases(self, alias, expected):
        """Common spellings resolve to the canonical unit."""
        assert parse_unit(alias) == expected

    def test_empty_symbol(self):
        """Blank symbols are rejected."""
        with pytest.raises(UnknownUnitError):
            parse_unit('')


class TestAlcoholHelpers:
    """Tests for ABV and proof helpers."""

    def test_abv_to_proof(self):
        """US proof is twice ABV."""
        assert abv_to_proof(Decimal('40')) == Decimal('80')

    def test_proof_to_abv(self):
        assert proof_to_abv(Decimal('110')) == Decimal('55')

    def test_abv_out_of_range(self):
        """ABV outside 0-100 is an invalid quantity, not a unit mismatch."""
        with pytest.raises(InvalidQuantityError):
            abv_to_proof(Decimal('101'))
        with pytest.raises(InvalidQuantityError):
            proof_to_abv(Decimal('-2'))

    def test_proof_gallon_definition(self):
        """One wine gallon at 50% ABV is one proof gallon."""
        assert proof_gallons(Decimal('1'), Unit.GALLON, Decimal('50')) == Decimal('1')

    def test_proof_gallons_from_liters(self):
        """20 L of brandy at 55% ABV is about 5.812 proof gallons."""
        result = proof_gallons(Decimal('20'), Unit.LITER, Decimal('55'))
        assert quantize_volume(result) == Decimal('5.812')

    def test_proof_gallons_requires_volume(self):
        """Proof gallons of a mass make no sense."""
        with pytest.raises(IncompatibleUnitsError):
            proof_gallons(Decimal('1'), Unit.KILOGRAM, Decimal('40'))

    def test_wine_gallon_helpers(self):
        back = wine_gallons_to_liters(liters_to_wine_gallons(Decimal('500')))
        assert quantize_volume(back) == Decimal('500.000')


class TestQuantizeVolume:
    """Tests for quantize_volume()."""

    def test_rounds_half_up_to_three_places(self):
        assert quantize_volume(Decimal('1.0005')) == Decimal('1.001')

    def test_respects_explicit_places(self):
        assert quantize_volume(Decimal('1.2345'), places=2) == Decimal('1.23')

    def test_uses_setting(self, settings):
        """The default precision follows LEDGER_VOLUME_DECIMAL_PLACES."""
        settings.LEDGER_VOLUME_DECIMAL_PLACES = 1
        assert quantize_volume(Decimal('2.25')) == Decimal('2.3')
