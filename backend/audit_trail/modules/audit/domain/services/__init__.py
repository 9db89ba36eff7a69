"""Audit domain services."""

from .diff_engine import compute_diff, mask_value, values_equal
from .sensitivity import SensitivityMatcher

__all__ = ["SensitivityMatcher", "compute_diff", "mask_value", "values_equal"]
