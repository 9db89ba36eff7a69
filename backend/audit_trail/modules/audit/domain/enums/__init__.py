from audit_trail.modules.audit.domain.enums.audit_enums import (
    ActionKind,
    ActorType,
    SourceChannel,
)

__all__ = ["ActionKind", "ActorType", "SourceChannel"]
