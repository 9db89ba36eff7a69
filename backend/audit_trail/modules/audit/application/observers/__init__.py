"""Audit observers."""

from .change_observer import ChangeObserver

__all__ = ["ChangeObserver"]
