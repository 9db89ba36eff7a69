"""Sensitive field matching."""

import re
from collections.abc import Iterable
from functools import lru_cache


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    """Compile a ``*`` wildcard pattern into an anchored case-insensitive regex."""
    parts = (re.escape(part) for part in pattern.split("*"))
    return re.compile("^" + ".*".join(parts) + "$", re.IGNORECASE)


class SensitivityMatcher:
    """
    Decides whether a field holds sensitive data.

    Patterns without ``*`` match the field name exactly. Patterns with ``*``
    are wildcards matched case-insensitively against the whole name, so
    ``*token*`` matches ``access_token`` and ``token`` but not ``toke``.
    """

    def __init__(self, global_patterns: Iterable[str]):
        self.global_patterns: tuple[str, ...] = tuple(global_patterns)

    def is_sensitive(self, field: str, extra: Iterable[str] = ()) -> bool:
        patterns = self.global_patterns + tuple(extra)

        if field in patterns:
            return True

        return any(
            "*" in pattern and _compile(pattern).match(field) is not None
            for pattern in patterns
        )

    def with_patterns(self, extra: Iterable[str]) -> "SensitivityMatcher":
        """Return a matcher carrying additional global patterns."""
        return SensitivityMatcher(self.global_patterns + tuple(extra))


__all__ = ["SensitivityMatcher"]
