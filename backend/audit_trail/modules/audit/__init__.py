"""Audit module for entity change tracking.

This module provides the audit trail capabilities:
- Semantic attribute diffs with sensitive value masking
- Aggregation of every change to an entity within one unit of work
- Deferred flush on commit, discard on rollback
- Immutable audit entries with request metadata
- Synchronous persistence or queued dispatch through Celery
"""

__version__ = "1.0.0"
