"""Audit domain enumerations.

This module defines the enumerations used throughout the audit domain:
the lifecycle action recorded by an entry, the coarse channel a change
arrived through, and the kind of actor that performed it.
"""

from enum import Enum, IntEnum
from typing import Any


class ActionKind(IntEnum):
    """
    Lifecycle action recorded by an audit entry.

    The integer values are the persisted representation. Merge dominance is
    Deleted > Created > {Updated, RelationsUpdated}; Restored only ever comes
    from a direct notification.
    """

    CREATED = 1
    UPDATED = 2
    DELETED = 3
    RESTORED = 4
    RELATIONS_UPDATED = 5

    @property
    def label(self) -> str:
        """Human-readable label."""
        return _LABELS[self]

    @property
    def slug(self) -> str:
        """Lower-case string form (``created``, ``relations_updated``...)."""
        return self.name.lower()

    @property
    def dominance(self) -> int:
        """Rank used when two notifications for one entity disagree."""
        if self is ActionKind.DELETED:
            return 2
        if self is ActionKind.CREATED:
            return 1
        return 0

    @classmethod
    def parse(cls, value: Any) -> "ActionKind":
        """
        Parse an action from a member, its integer value or its label.

        Raises:
            InvalidActionError: If the value does not name an action
        """
        from audit_trail.modules.audit.domain.errors.audit_errors import (
            InvalidActionError,
        )

        if isinstance(value, cls):
            return value

        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                raise InvalidActionError(value) from None

        if isinstance(value, str):
            normalized = value.strip().lower().replace(" ", "_")
            for member in cls:
                if normalized == member.slug:
                    return member

        raise InvalidActionError(value)

    def __str__(self) -> str:
        return self.slug


_LABELS = {
    ActionKind.CREATED: "Created",
    ActionKind.UPDATED: "Updated",
    ActionKind.DELETED: "Deleted",
    ActionKind.RESTORED: "Restored",
    ActionKind.RELATIONS_UPDATED: "Relations Updated",
}


class SourceChannel(Enum):
    """Coarse classification of where a change came from."""

    CONSOLE = "console"
    API = "api"
    ADMIN_PANEL = "admin_panel"
    WEB = "web"
    SYSTEM = "system"

    @classmethod
    def from_path(
        cls,
        path: str | None,
        api_prefixes: tuple[str, ...] = ("api/",),
        admin_prefixes: tuple[str, ...] = ("admin/", "admin-api/"),
    ) -> "SourceChannel":
        """
        Classify a request path.

        ``None`` means no HTTP request is active, which is a console run.
        """
        if path is None:
            return cls.CONSOLE

        normalized = path.lstrip("/")
        if any(normalized.startswith(prefix) for prefix in api_prefixes):
            return cls.API
        if any(normalized.startswith(prefix) for prefix in admin_prefixes):
            return cls.ADMIN_PANEL
        return cls.WEB

    def __str__(self) -> str:
        return self.value


class ActorType(Enum):
    """Kind of principal that performed a change."""

    USER = "user"
    SYSTEM = "system"
    SERVICE = "service"

    def __str__(self) -> str:
        return self.value


__all__ = ["ActionKind", "ActorType", "SourceChannel"]
