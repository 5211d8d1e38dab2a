"""
Accounts app - cidery staff (operators) who perform and sign off on ledger changes.
"""
