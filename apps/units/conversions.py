"""
Unit Conversion Module
======================

Pure, stateless conversions between the volume and mass units used in
cider production, plus alcohol strength helpers (ABV, US proof, proof
gallons).

All arithmetic is done with :class:`decimal.Decimal` so that repeated
conversions do not drift. Conversion results are *not* rounded; call
:func:`quantize_volume` when a value is about to be stored.

Example:
    Converting a tank reading and computing proof gallons::

        from decimal import Decimal
        from apps.units.conversions import convert, proof_gallons, Unit

        gallons = convert(Decimal('1000'), Unit.LITER, Unit.GALLON)
        pg = proof_gallons(Decimal('20'), Unit.LITER, Decimal('55'))

Note:
    The gallon is the US wine gallon (231 cubic inches), which is the
    unit used for excise reporting.
"""

from decimal import Decimal, ROUND_HALF_UP, localcontext
from enum import Enum
from typing import Optional, Union

from django.conf import settings

from .exceptions import IncompatibleUnitsError, InvalidQuantityError, UnknownUnitError


class Dimension(str, Enum):
    VOLUME = 'volume'
    MASS = 'mass'


class Unit(str, Enum):
    LITER = 'L'
    MILLILITER = 'mL'
    GALLON = 'gal'
    KILOGRAM = 'kg'
    POUND = 'lb'
    BUSHEL = 'bushel'

    @property
    def dimension(self) -> Dimension:
        return _DIMENSIONS[self]

    @property
    def is_volume(self) -> bool:
        return self.dimension == Dimension.VOLUME

    @property
    def is_mass(self) -> bool:
        return self.dimension == Dimension.MASS


# Exact definitions (US customary units are defined in SI).
LITERS_PER_GALLON = Decimal('3.785411784')
LITERS_PER_MILLILITER = Decimal('0.001')
KG_PER_POUND = Decimal('0.45359237')
# Apple bushel as used by orchards we buy from (40 lb nominal).
KG_PER_BUSHEL = Decimal('18.14')

PROOF_PER_ABV = Decimal('2')

_DIMENSIONS = {
    Unit.LITER: Dimension.VOLUME,
    Unit.MILLILITER: Dimension.VOLUME,
    Unit.GALLON: Dimension.VOLUME,
    Unit.KILOGRAM: Dimension.MASS,
    Unit.POUND: Dimension.MASS,
    Unit.BUSHEL: Dimension.MASS,
}

# Factor to the canonical unit of the dimension (liters / kilograms).
_TO_CANONICAL = {
    Unit.LITER: Decimal('1'),
    Unit.MILLILITER: LITERS_PER_MILLILITER,
    Unit.GALLON: LITERS_PER_GALLON,
    Unit.KILOGRAM: Decimal('1'),
    Unit.POUND: KG_PER_POUND,
    Unit.BUSHEL: KG_PER_BUSHEL,
}

_ALIASES = {
    'l': Unit.LITER,
    'liter': Unit.LITER,
    'liters': Unit.LITER,
    'litre': Unit.LITER,
    'litres': Unit.LITER,
    'ml': Unit.MILLILITER,
    'milliliter': Unit.MILLILITER,
    'milliliters': Unit.MILLILITER,
    'gal': Unit.GALLON,
    'gallon': Unit.GALLON,
    'gallons': Unit.GALLON,
    'kg': Unit.KILOGRAM,
    'kilogram': Unit.KILOGRAM,
    'kilograms': Unit.KILOGRAM,
    'lb': Unit.POUND,
    'lbs': Unit.POUND,
    'pound': Unit.POUND,
    'pounds': Unit.POUND,
    'bushel': Unit.BUSHEL,
    'bushels': Unit.BUSHEL,
    'bu': Unit.BUSHEL,
}

CANONICAL_UNITS = {
    Dimension.VOLUME: Unit.LITER,
    Dimension.MASS: Unit.KILOGRAM,
}

Number = Union[Decimal, int, str]


def to_decimal(value: Number) -> Decimal:
    """Coerce ints, strings and Decimals to Decimal (floats go through str)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def parse_unit(value: Union[str, Unit]) -> Unit:
    """
    Resolve a unit symbol or common alias to a :class:`Unit`.

    Raises:
        UnknownUnitError: If the symbol is not recognised
    """
    if isinstance(value, Unit):
        return value
    symbol = (value or '').strip()
    try:
        return Unit(symbol)
    except ValueError:
        pass
    unit = _ALIASES.get(symbol.lower())
    if unit is None:
        raise UnknownUnitError(f"Unknown unit: '{value}'")
    return unit


def convert(
    amount: Number,
    from_unit: Union[str, Unit],
    to_unit: Union[str, Unit],
    *,
    density: Optional[Number] = None
) -> Decimal:
    """
    Convert an amount between units.

    Same-dimension conversions are exact up to Decimal precision.
    Volume <-> mass needs an explicit density in kg per liter.

    Args:
        amount: Amount expressed in ``from_unit``
        from_unit: Source unit (symbol or Unit)
        to_unit: Target unit (symbol or Unit)
        density: Density in kg/L, only used across dimensions

    Returns:
        Converted amount (unrounded)

    Raises:
        UnknownUnitError: If either unit is not recognised
        IncompatibleUnitsError: If dimensions differ and no density is given
    """
    source = parse_unit(from_unit)
    target = parse_unit(to_unit)
    value = to_decimal(amount)

    if source == target:
        return value

    with localcontext() as ctx:
        ctx.prec = 34
        canonical = value * _TO_CANONICAL[source]

        if source.dimension != target.dimension:
            if density is None:
                raise IncompatibleUnitsError(
                    f"Cannot convert {source.value} ({source.dimension.value}) to "
                    f"{target.value} ({target.dimension.value}) without a density factor"
                )
            rho = to_decimal(density)
            if rho <= 0:
                raise IncompatibleUnitsError("Density must be greater than zero")
            if source.is_volume:
                canonical = canonical * rho
            else:
                canonical = canonical / rho

        return canonical / _TO_CANONICAL[target]


def quantize_volume(amount: Number, places: Optional[int] = None) -> Decimal:
    """Round a value to the ledger's stored precision (3 places by default)."""
    if places is None:
        places = getattr(settings, 'LEDGER_VOLUME_DECIMAL_PLACES', 3)
    exponent = Decimal(1).scaleb(-places)
    return to_decimal(amount).quantize(exponent, rounding=ROUND_HALF_UP)


def to_liters(amount: Number, unit: Union[str, Unit]) -> Decimal:
    return convert(amount, unit, Unit.LITER)


def liters_to_wine_gallons(liters: Number) -> Decimal:
    return convert(liters, Unit.LITER, Unit.GALLON)


def wine_gallons_to_liters(gallons: Number) -> Decimal:
    return convert(gallons, Unit.GALLON, Unit.LITER)


def _check_abv(abv: Decimal) -> None:
    if abv < 0 or abv > 100:
        raise InvalidQuantityError(f"ABV must be between 0 and 100, got {abv}")


def abv_to_proof(abv: Number) -> Decimal:
    """US proof is twice the alcohol by volume percentage."""
    value = to_decimal(abv)
    _check_abv(value)
    return value * PROOF_PER_ABV


def proof_to_abv(proof: Number) -> Decimal:
    value = to_decimal(proof) / PROOF_PER_ABV
    _check_abv(value)
    return value


def proof_gallons(amount: Number, unit: Union[str, Unit], abv: Number) -> Decimal:
    """
    Compute proof gallons for a volume at a given ABV.

    One proof gallon is one wine gallon at 50% ABV (100 proof).

    Raises:
        IncompatibleUnitsError: If ``unit`` is not a volume unit
    """
    gallons = convert(amount, unit, Unit.GALLON)
    return gallons * abv_to_proof(abv) / Decimal('100')
