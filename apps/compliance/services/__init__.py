"""
Compliance app services layer.

Reporting periods, period reconciliation against reported balances and
the hard cider excise calculation.
"""

from .exceptions import (
    ComplianceServiceError,
    InvalidPeriodError,
    SnapshotNotFoundError,
    InvalidReportedBalanceError,
)

from .periods import (
    period_range,
    period_label,
    period_bounds,
)

from .reconciliation import (
    ReconciliationDiscrepancy,
    ReconciliationResult,
    reconcile_period,
    get_reconciliation_snapshot,
    set_reported_balance,
    list_reported_balances,
)

from .tax import (
    TaxCalculation,
    calculate_hard_cider_tax,
    calculate_period_tax,
    tax_paid_removal_gallons,
)


__all__ = [
    # Exceptions
    'ComplianceServiceError',
    'InvalidPeriodError',
    'SnapshotNotFoundError',
    'InvalidReportedBalanceError',

    # Periods
    'period_range',
    'period_label',
    'period_bounds',

    # Reconciliation
    'ReconciliationDiscrepancy',
    'ReconciliationResult',
    'reconcile_period',
    'get_reconciliation_snapshot',
    'set_reported_balance',
    'list_reported_balances',

    # Excise
    'TaxCalculation',
    'calculate_hard_cider_tax',
    'calculate_period_tax',
    'tax_paid_removal_gallons',
]
