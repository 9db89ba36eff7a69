"""Audit application services."""
