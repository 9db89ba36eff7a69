"""Audit module dependency configuration.

Wires the audit components from settings: persistence, optional Celery
dispatch, the entry builder, the registry and the observer.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.engine import Engine

from audit_trail.core.config import AuditSettings, get_settings
from audit_trail.core.database import (
    SessionFactory,
    create_audit_engine,
    create_session_factory,
)
from audit_trail.core.logging import LogConfig, configure_logging, get_logger
from audit_trail.modules.audit.application.observers.change_observer import (
    ChangeObserver,
)
from audit_trail.modules.audit.application.services.audit_entry_builder import (
    AuditEntryBuilder,
)
from audit_trail.modules.audit.application.services.audit_gate import (
    AuditGate,
    default_gate,
)
from audit_trail.modules.audit.application.services.audit_registry import (
    AuditRegistry,
)
from audit_trail.modules.audit.application.services.audit_service import (
    AuditService,
)
from audit_trail.modules.audit.domain.interfaces.ports import (
    AuditDispatcher,
    RelationResolver,
)
from audit_trail.modules.audit.domain.services.sensitivity import SensitivityMatcher
from audit_trail.modules.audit.infrastructure.orm_listener import (
    install_audit_listeners,
)
from audit_trail.modules.audit.infrastructure.repositories.audit_log_repository import (
    AuditLogRepository,
)
from audit_trail.modules.audit.infrastructure.request_context import (
    ContextActorResolver,
    ContextRequestContextProvider,
)

logger = get_logger(__name__)


@dataclass
class AuditComponents:
    """Configured audit collaborators."""

    settings: AuditSettings
    repository: AuditLogRepository
    builder: AuditEntryBuilder
    registry: AuditRegistry
    observer: ChangeObserver
    service: AuditService
    gate: AuditGate
    dispatcher: AuditDispatcher | None = None

    def install_listeners(self, target: Any) -> Callable[[], None]:
        """Audit the unit-of-work events of a Session, sessionmaker or Session class."""
        return install_audit_listeners(target, self.observer, self.builder)

    def middleware_options(self) -> dict[str, Any]:
        """
        Keyword arguments for CaptureAuditContextMiddleware.

        Usage Example:
            app.add_middleware(
                CaptureAuditContextMiddleware, **components.middleware_options()
            )
        """
        return {
            "builder": self.builder,
            "request_id_headers": self.settings.request_id_headers,
        }


def configure_audit(
    settings: AuditSettings | None = None,
    session_factory: SessionFactory | None = None,
    engine: Engine | None = None,
    registry: AuditRegistry | None = None,
    dispatcher: AuditDispatcher | None = None,
    relation_resolver: RelationResolver | None = None,
    gate: AuditGate | None = None,
    configure_logs: bool = True,
    **builder_kwargs: Any,
) -> AuditComponents:
    """
    Build the audit components.

    Args:
        settings: Settings, read from the environment when omitted
        session_factory: Session factory used for audit persistence
        engine: Engine used to create the session factory when none is given
        registry: Per-type configuration, resolved before use
        dispatcher: Queue hand-off; the Celery dispatcher when queueing is
            enabled and none is given
        relation_resolver: Enriches relation references
        gate: Runtime switches, the process-wide gate by default
        configure_logs: Install the structlog processor chain from settings
        **builder_kwargs: Extra AuditEntryBuilder arguments (``clock``...)
    """
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(
            LogConfig(
                level=settings.log_level,
                format=settings.log_format,
                environment=settings.environment,
            )
        )

    if session_factory is None:
        session_factory = create_session_factory(engine or create_audit_engine(settings))
    repository = AuditLogRepository(session_factory)

    if settings.queue_enabled and dispatcher is None:
        from audit_trail.tasks.audit_tasks import CeleryAuditDispatcher

        dispatcher = CeleryAuditDispatcher(queue_name=settings.queue_name)

    registry = registry or AuditRegistry()
    registry.resolve()
    gate = gate or default_gate

    builder = AuditEntryBuilder(
        sink=repository,
        actor_resolver=ContextActorResolver(),
        request_context=ContextRequestContextProvider(),
        dispatcher=dispatcher,
        queue_enabled=settings.queue_enabled,
        relation_resolver=relation_resolver,
        api_path_prefixes=settings.api_path_prefixes,
        admin_path_prefixes=settings.admin_path_prefixes,
        **builder_kwargs,
    )
    observer = ChangeObserver(
        registry=registry,
        matcher=SensitivityMatcher(settings.sensitive_fields),
        gate=gate,
        excluded_attributes=settings.excluded_attributes,
    )

    logger.info("Audit trail configured", **settings.to_dict())

    return AuditComponents(
        settings=settings,
        repository=repository,
        builder=builder,
        registry=registry,
        observer=observer,
        service=AuditService(observer),
        gate=gate,
        dispatcher=dispatcher,
    )


__all__ = ["AuditComponents", "configure_audit"]
