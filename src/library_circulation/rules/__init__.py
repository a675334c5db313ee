"""Deterministic business rules: calendar, fines, ledger checks and permissions."""
