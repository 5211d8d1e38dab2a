"""
Compliance app - period reconciliation and excise tax.

Reads the cellar transaction log; writes only its own reconciliation
snapshots and reported balances.
"""
