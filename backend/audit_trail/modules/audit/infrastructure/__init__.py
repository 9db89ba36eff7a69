"""Audit infrastructure layer: persistence, transactions and host integration."""
