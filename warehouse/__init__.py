"""Warehouse inventory tracker: items, quantity ledger, scan log and access scoping."""
