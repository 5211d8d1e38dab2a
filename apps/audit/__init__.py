"""
Audit app - immutable, diffable record of every tracked change.

Every ledger mutation passes its before/after snapshots through
``apps.audit.services.record`` inside the same database transaction.
"""
