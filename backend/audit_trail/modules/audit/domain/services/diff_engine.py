"""Attribute diff engine.

Pure functions that turn two attribute snapshots into the minimal set of
changed fields. Equality is semantic rather than strict: ``30`` and ``"30"``
are the same value, ``None`` and ``""`` are both empty, and structured values
are compared through a canonical JSON form.
"""

import json
import re
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from audit_trail.core.config import TIMESTAMP_ATTRIBUTES
from audit_trail.modules.audit.domain.services.sensitivity import SensitivityMatcher
from audit_trail.modules.audit.domain.value_objects.changes import (
    AttributeDiff,
    FieldChange,
)

REDACTED = "[REDACTED]"
MASK_CHAR = "*"

_NUMERIC_PATTERN = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")
_FALSE_STRINGS = frozenset({"", "0", "false"})


def compute_diff(
    old: Mapping[str, Any] | None,
    new: Mapping[str, Any] | None,
    excluded: Iterable[str] = (),
    sensitive: Iterable[str] = (),
    matcher: SensitivityMatcher | None = None,
) -> AttributeDiff:
    """
    Compute the changed fields between two snapshots.

    Fields of ``new`` come first (in ``new`` order), then fields only present
    in ``old``, which are reported as removed (``new`` is None).

    Args:
        old: Snapshot before the change
        new: Snapshot after the change
        excluded: Field names never reported
        sensitive: Extra sensitive patterns for this call
        matcher: Sensitivity matcher holding the global patterns

    Returns:
        Field name -> FieldChange, masked where the field is sensitive
    """
    old = old or {}
    new = new or {}
    skipped = set(excluded) | set(TIMESTAMP_ATTRIBUTES)
    sensitive = tuple(sensitive)
    if matcher is None:
        matcher = SensitivityMatcher(())

    diff: AttributeDiff = {}

    for name, new_value in new.items():
        if name in skipped:
            continue
        old_value = old.get(name)
        if values_equal(old_value, new_value):
            continue
        diff[name] = _field_change(name, old_value, new_value, sensitive, matcher)

    for name, old_value in old.items():
        if name in skipped or name in new:
            continue
        diff[name] = _field_change(name, old_value, None, sensitive, matcher)

    return diff


def _field_change(
    name: str,
    old_value: Any,
    new_value: Any,
    sensitive: tuple[str, ...],
    matcher: SensitivityMatcher,
) -> FieldChange:
    if matcher.is_sensitive(name, sensitive):
        return FieldChange(old=mask_value(old_value), new=mask_value(new_value))
    return FieldChange(old=old_value, new=new_value)


def values_equal(a: Any, b: Any) -> bool:
    """Semantic equality used to decide whether a field changed."""
    if a is None and b is None:
        return True

    if _is_empty(a) and _is_empty(b):
        return True

    a = _canonical(a)
    b = _canonical(b)

    if isinstance(a, bool) or isinstance(b, bool):
        return _as_bool(a) == _as_bool(b)

    if _is_numeric(a) and _is_numeric(b):
        return float(a) == float(b)

    return _as_text(a).strip() == _as_text(b).strip()


def mask_value(value: Any) -> str:
    """
    Redact a sensitive value, keeping at most two characters at each end.

    Empty values (``None``, empty strings and empty collections) become
    ``[REDACTED]``; values of four characters or fewer are fully masked.
    """
    if _is_empty(value):
        return REDACTED

    text = _as_text(value)
    length = len(text)
    if length <= 4:
        return MASK_CHAR * length

    return text[:2] + MASK_CHAR * max(4, length - 4) + text[-2:]


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str | bytes):
        return len(value) == 0
    if isinstance(value, Mapping | list | tuple | set | frozenset):
        return len(value) == 0
    return False


def _canonical(value: Any) -> Any:
    """Structured values become a deterministic JSON string."""
    if isinstance(value, Mapping | list | tuple | set | frozenset):
        return canonical_json(value)
    return value


def canonical_json(value: Any) -> str:
    """Deterministic JSON form; unserializable members fall back to ``repr``."""
    if isinstance(value, set | frozenset):
        value = sorted(value, key=repr)
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=repr)
    except (TypeError, ValueError):
        return repr(_sorted_repr(value))


def _sorted_repr(value: Any) -> Any:
    if isinstance(value, Mapping):
        return sorted(((repr(k), _sorted_repr(v)) for k, v in value.items()))
    if isinstance(value, list | tuple):
        return [_sorted_repr(item) for item in value]
    return repr(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int | float | Decimal):
        return True
    if isinstance(value, str):
        return _NUMERIC_PATTERN.match(value) is not None
    return False


def _as_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    return str(value)


__all__ = [
    "MASK_CHAR",
    "REDACTED",
    "canonical_json",
    "compute_diff",
    "mask_value",
    "values_equal",
]
