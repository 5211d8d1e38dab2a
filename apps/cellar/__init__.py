"""
Cellar app - vessels, batches and the volume ledger.

Every change to what is in which vessel goes through
``apps.cellar.services``; the transaction log is the source of truth for
volumes.
"""
