"""Quantity value type shared by the ledger, blending and reconciliation layers."""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional, Union

from .conversions import (
    CANONICAL_UNITS,
    Number,
    Unit,
    convert,
    parse_unit,
    proof_gallons,
    quantize_volume,
    to_decimal,
)
from .exceptions import IncompatibleUnitsError, InvalidQuantityError


@dataclass(frozen=True)
class Quantity:
    """
    An immutable physical amount: volume or mass, with an optional ABV.

    Invariants:
        - ``amount >= 0``
        - ``abv`` is ``None`` or within ``[0, 100]``

    Arithmetic never mutates; every operation returns a new Quantity.
    Signed amounts (ledger deltas) are kept as plain Decimals by the
    transaction log, never as Quantity.
    """

    amount: Decimal
    unit: Unit
    abv: Optional[Decimal] = None

    def __post_init__(self):
        object.__setattr__(self, 'amount', to_decimal(self.amount))
        object.__setattr__(self, 'unit', parse_unit(self.unit))
        if self.abv is not None:
            object.__setattr__(self, 'abv', to_decimal(self.abv))

        if self.amount < 0:
            raise InvalidQuantityError(f"Quantity cannot be negative: {self.amount} {self.unit.value}")
        if self.abv is not None and not (0 <= self.abv <= 100):
            raise InvalidQuantityError(f"ABV must be between 0 and 100, got {self.abv}")
        if self.abv is not None and not self.unit.is_volume:
            raise InvalidQuantityError("ABV only applies to volume quantities")

    # Constructors

    @classmethod
    def liters(cls, amount: Number, abv: Optional[Number] = None) -> 'Quantity':
        return cls(to_decimal(amount), Unit.LITER, to_decimal(abv) if abv is not None else None)

    @classmethod
    def zero(cls, unit: Union[str, Unit] = Unit.LITER) -> 'Quantity':
        return cls(Decimal('0'), parse_unit(unit))

    @classmethod
    def from_dict(cls, data: dict) -> 'Quantity':
        abv = data.get('abv')
        return cls(
            amount=to_decimal(data['amount']),
            unit=parse_unit(data['unit']),
            abv=to_decimal(abv) if abv is not None else None,
        )

    # Conversions

    def to(self, unit: Union[str, Unit]) -> 'Quantity':
        target = parse_unit(unit)
        return Quantity(convert(self.amount, self.unit, target), target, self.abv)

    def in_liters(self) -> Decimal:
        if not self.unit.is_volume:
            raise IncompatibleUnitsError(f"{self.unit.value} is not a volume unit")
        return convert(self.amount, self.unit, Unit.LITER)

    def in_kg(self) -> Decimal:
        if not self.unit.is_mass:
            raise IncompatibleUnitsError(f"{self.unit.value} is not a mass unit")
        return convert(self.amount, self.unit, Unit.KILOGRAM)

    def canonical(self) -> 'Quantity':
        """Return the same amount in liters or kilograms."""
        return self.to(CANONICAL_UNITS[self.unit.dimension])

    def quantized(self) -> 'Quantity':
        return replace(self, amount=quantize_volume(self.amount))

    def with_abv(self, abv: Optional[Number]) -> 'Quantity':
        return replace(self, abv=to_decimal(abv) if abv is not None else None)

    def proof_gallons(self) -> Decimal:
        if self.abv is None:
            raise InvalidQuantityError("Proof gallons require an ABV")
        return proof_gallons(self.amount, self.unit, self.abv)

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    # Arithmetic

    def _coerce(self, other: 'Quantity') -> Decimal:
        if not isinstance(other, Quantity):
            return NotImplemented
        if other.unit.dimension != self.unit.dimension:
            raise IncompatibleUnitsError(
                f"Cannot combine {self.unit.value} with {other.unit.value}"
            )
        return convert(other.amount, other.unit, self.unit)

    def __add__(self, other: 'Quantity') -> 'Quantity':
        amount = self._coerce(other)
        if amount is NotImplemented:
            return NotImplemented
        return Quantity(self.amount + amount, self.unit)

    def __sub__(self, other: 'Quantity') -> 'Quantity':
        amount = self._coerce(other)
        if amount is NotImplemented:
            return NotImplemented
        return Quantity(self.amount - amount, self.unit)

    def compare(self, other: 'Quantity') -> int:
        """Compare amounts across units of the same dimension (-1, 0, 1)."""
        amount = self._coerce(other)
        if self.amount < amount:
            return -1
        if self.amount > amount:
            return 1
        return 0

    def __lt__(self, other: 'Quantity') -> bool:
        return self.compare(other) < 0

    def __le__(self, other: 'Quantity') -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: 'Quantity') -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: 'Quantity') -> bool:
        return self.compare(other) >= 0

    def as_dict(self) -> dict:
        return {
            'amount': str(self.amount),
            'unit': self.unit.value,
            'abv': str(self.abv) if self.abv is not None else None,
        }

    def __str__(self):
        text = f"{self.amount} {self.unit.value}"
        if self.abv is not None:
            text += f" @ {self.abv}% ABV"
        return text
