"""Entity audit trail: change aggregation, diffing and audit entry persistence."""

__version__ = "1.0.0"
