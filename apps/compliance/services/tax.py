"""
Hard cider excise tax.

Federal rate for hard cider is $0.226 per wine gallon. Small producers
get a credit of $0.056 per gallon on the first 30,000 gallons removed in
a calendar year.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from django.db.models import Sum

from apps.cellar.models import EntryType, RemovalCategory, TaxClass, TransactionEntry
from apps.units.conversions import liters_to_wine_gallons, quantize_volume, to_decimal

from .periods import period_bounds

HARD_CIDER_TAX_RATE = Decimal('0.226')
SMALL_PRODUCER_CREDIT_PER_GALLON = Decimal('0.056')
SMALL_PRODUCER_CREDIT_LIMIT_GALLONS = Decimal('30000')

CENTS = Decimal('0.01')
RATE_PLACES = Decimal('0.0001')


@dataclass(frozen=True)
class TaxCalculation:
    taxable_gallons: Decimal
    gross_tax: Decimal
    small_producer_credit: Decimal
    credit_eligible_gallons: Decimal
    net_tax_owed: Decimal
    effective_rate: Decimal

    def as_dict(self) -> dict:
        return {name: str(value) for name, value in self.__dict__.items()}


def calculate_hard_cider_tax(taxable_gallons, prior_year_gallons_used=0) -> TaxCalculation:
    """
    Excise owed on hard cider removals.

    Args:
        taxable_gallons: Wine gallons removed tax-paid
        prior_year_gallons_used: Gallons already credited this calendar year

    Returns:
        TaxCalculation; money rounded to cents, effective rate to 4 places
    """
    gallons = to_decimal(taxable_gallons)
    zero = Decimal('0')
    if gallons <= 0:
        return TaxCalculation(zero, zero, zero, zero, zero, zero)

    gross = gallons * HARD_CIDER_TAX_RATE
    remaining_credit = max(zero, SMALL_PRODUCER_CREDIT_LIMIT_GALLONS - to_decimal(prior_year_gallons_used))
    eligible = min(gallons, remaining_credit)
    credit = eligible * SMALL_PRODUCER_CREDIT_PER_GALLON
    net = gross - credit

    return TaxCalculation(
        taxable_gallons=gallons,
        gross_tax=gross.quantize(CENTS, rounding=ROUND_HALF_UP),
        small_producer_credit=credit.quantize(CENTS, rounding=ROUND_HALF_UP),
        credit_eligible_gallons=eligible,
        net_tax_owed=net.quantize(CENTS, rounding=ROUND_HALF_UP),
        effective_rate=(net / gallons).quantize(RATE_PLACES, rounding=ROUND_HALF_UP),
    )


def tax_paid_removal_gallons(*, period_start: date, period_end: date, tax_class: str = TaxClass.HARD_CIDER) -> Decimal:
    """Wine gallons removed tax-paid for a tax class within the period."""
    start, end = period_bounds(period_start, period_end)
    liters = TransactionEntry.objects.filter(
        entry_type=EntryType.REMOVAL,
        reason_code=RemovalCategory.TAX_PAID,
        batch__tax_class=tax_class,
        timestamp__gte=start,
        timestamp__lt=end,
    ).aggregate(total=Sum('delta_liters'))['total'] or Decimal('0')
    return quantize_volume(liters_to_wine_gallons(abs(liters)))


def calculate_period_tax(*, period_start: date, period_end: date, prior_year_gallons_used=0) -> TaxCalculation:
    """Hard cider excise for the tax-paid removals recorded in a period."""
    gallons = tax_paid_removal_gallons(period_start=period_start, period_end=period_end)
    return calculate_hard_cider_tax(gallons, prior_year_gallons_used)
