"""Actor value object."""

from dataclasses import dataclass
from typing import Any

from audit_trail.modules.audit.domain.enums.audit_enums import ActorType


@dataclass(frozen=True)
class Actor:
    """Principal that performed a change. ``id`` is None for the system actor."""

    type: str
    id: Any = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(type=ActorType.SYSTEM.value, id=None)

    @classmethod
    def user(cls, user_id: Any) -> "Actor":
        return cls(type=ActorType.USER.value, id=user_id)

    @classmethod
    def coerce(cls, value: Any) -> "Actor":
        """Accept an Actor, a ``{"type", "id"}`` mapping or a user object with ``id``."""
        if isinstance(value, Actor):
            return value
        if value is None:
            return cls.system()
        if isinstance(value, dict):
            return cls(type=value.get("type") or ActorType.SYSTEM.value, id=value.get("id"))
        user_id = getattr(value, "id", None)
        if user_id is not None:
            return cls.user(user_id)
        return cls.system()

    @property
    def is_system(self) -> bool:
        return self.type == ActorType.SYSTEM.value

    def __str__(self) -> str:
        if self.id is None:
            return self.type
        return f"{self.type}#{self.id}"
