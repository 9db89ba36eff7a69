"""Audit entry builder.

This module turns a flushed pending change into an AuditEntry: it resolves
the actor, collects request metadata, enriches relation references and hands
the entry to the synchronous sink or the asynchronous dispatcher.
"""

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from audit_trail.core.logging import get_logger
from audit_trail.modules.audit.domain.entities.audit_entry import AuditEntry
from audit_trail.modules.audit.domain.enums.audit_enums import (
    ActionKind,
    SourceChannel,
)
from audit_trail.modules.audit.domain.errors.audit_errors import AuditSinkError
from audit_trail.modules.audit.domain.interfaces.ports import (
    ActorResolver,
    AuditDispatcher,
    AuditSink,
    RelationResolver,
    RequestContextProvider,
)
from audit_trail.modules.audit.domain.value_objects.actor import Actor
from audit_trail.modules.audit.domain.value_objects.changes import (
    AttributeDiff,
    RelationChange,
    RelationDiff,
)
from audit_trail.modules.audit.domain.value_objects.relation_ref import RelationRef

logger = get_logger(__name__)


class AuditEntryBuilder:
    """
    Builds and delivers audit entries.

    Collaborator failures never prevent an entry from being written: the actor
    falls back to the system actor, metadata values fall back to None and
    relation references stay ID-only. Only sink and dispatcher failures are
    raised, as AuditSinkError.
    """

    def __init__(
        self,
        sink: AuditSink,
        actor_resolver: ActorResolver | None = None,
        request_context: RequestContextProvider | None = None,
        dispatcher: AuditDispatcher | None = None,
        queue_enabled: bool = False,
        clock: Callable[[], datetime] | None = None,
        relation_resolver: RelationResolver | None = None,
        api_path_prefixes: tuple[str, ...] = ("api/",),
        admin_path_prefixes: tuple[str, ...] = ("admin/", "admin-api/"),
    ):
        """
        Initialize the builder.

        Args:
            sink: Synchronous persistence
            actor_resolver: Resolves the current principal
            request_context: Inbound request details
            dispatcher: Queue hand-off, required when ``queue_enabled``
            queue_enabled: Enqueue entries instead of storing them
            clock: Timestamp source, UTC now by default
            relation_resolver: Enriches relation references with names
            api_path_prefixes: Path prefixes classified as ``api``
            admin_path_prefixes: Path prefixes classified as ``admin_panel``
        """
        if queue_enabled and dispatcher is None:
            raise ValueError("A dispatcher is required when queueing is enabled")

        self.sink = sink
        self.actor_resolver = actor_resolver
        self.request_context = request_context
        self.dispatcher = dispatcher
        self.queue_enabled = queue_enabled
        self.clock = clock or (lambda: datetime.now(UTC))
        self.relation_resolver = relation_resolver
        self.api_path_prefixes = api_path_prefixes
        self.admin_path_prefixes = admin_path_prefixes

    def build(
        self,
        entity: Any,
        action: ActionKind | str | int,
        attributes: AttributeDiff | None = None,
        relations: RelationDiff | None = None,
        actor: Actor | None = None,
        metadata: Mapping[str, Any] | None = None,
        identity: tuple[str, Any] | None = None,
    ) -> AuditEntry | None:
        """
        Build an entry and deliver it.

        ``identity`` is the ``(type, id)`` captured when the change was
        registered; the entity itself is only asked when it is omitted, since
        a committed or deleted ORM instance may no longer load its key.

        Returns:
            The stored entry, or None when the entry was queued

        Raises:
            AuditSinkError: If the sink or dispatcher fails
        """
        entity_type, entity_id = identity or entity.audit_identity()
        resolved_actor = Actor.coerce(actor) if actor is not None else self._resolve_actor()

        entry = AuditEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            action=ActionKind.parse(action),
            actor_type=resolved_actor.type,
            actor_id=resolved_actor.id,
            attributes=attributes or {},
            relations=self._enrich_relations(relations or {}),
            metadata=self._build_metadata(metadata),
            timestamp=self.clock(),
        )

        if self.queue_enabled:
            self._deliver(self.dispatcher.enqueue, entry, "dispatcher")
            logger.info(
                "Audit entry enqueued",
                entity_type=entity_type,
                entity_id=entity_id,
                action=entry.action.slug,
            )
            return None

        stored = self._deliver(self.sink.store, entry, "sink")
        logger.info(
            "Audit entry stored",
            entity_type=entity_type,
            entity_id=entity_id,
            action=entry.action.slug,
            entry_id=getattr(stored, "id", None),
        )
        return stored

    def _deliver(self, target: Callable[[AuditEntry], Any], entry: AuditEntry, name: str) -> Any:
        try:
            return target(entry)
        except AuditSinkError:
            raise
        except Exception as e:
            raise AuditSinkError(
                name,
                str(e),
                entity_type=entry.entity_type,
                entity_id=str(entry.entity_id),
                cause=e,
            ) from e

    def _resolve_actor(self) -> Actor:
        if self.actor_resolver is None:
            return Actor.system()
        try:
            return Actor.coerce(self.actor_resolver.current_actor())
        except Exception as e:
            logger.warning("Actor resolution failed, using system actor", error=str(e))
            return Actor.system()

    def _build_metadata(self, overrides: Mapping[str, Any] | None) -> dict[str, Any]:
        path = self._context_value("path")
        source = SourceChannel.CONSOLE
        if path is not None:
            source = SourceChannel.from_path(
                path, self.api_path_prefixes, self.admin_path_prefixes
            )

        metadata: dict[str, Any] = {
            "request_id": self._context_value("correlation_id"),
            "source": source.value,
            "ip_address": self._context_value("client_ip"),
            "user_agent": self._context_value("user_agent"),
        }
        if overrides:
            metadata.update(overrides)
        return metadata

    def _context_value(self, method: str) -> Any:
        if self.request_context is None:
            return None
        try:
            return getattr(self.request_context, method)()
        except Exception as e:
            logger.warning(
                "Request context lookup failed", lookup=method, error=str(e)
            )
            return None

    def _enrich_relations(self, relations: RelationDiff) -> RelationDiff:
        if self.relation_resolver is None or not relations:
            return relations

        enriched: RelationDiff = {}
        for name, change in relations.items():
            enriched[name] = RelationChange(
                added=self._enrich_refs(name, change.added),
                removed=self._enrich_refs(name, change.removed),
            )
        return enriched

    def _enrich_refs(
        self, relation_name: str, refs: tuple[RelationRef, ...]
    ) -> tuple[RelationRef, ...]:
        missing = [ref for ref in refs if ref.display_name is None]
        if not missing:
            return refs

        relation_type = missing[0].type_hint or relation_name
        try:
            resolved = self.relation_resolver.resolve(
                relation_type, [ref.id for ref in missing]
            )
        except Exception as e:
            logger.warning(
                "Relation resolution failed, keeping id-only references",
                relation=relation_name,
                error=str(e),
            )
            return refs

        by_id = {str(ref.id): ref for ref in resolved}
        return tuple(
            by_id.get(str(ref.id), ref) if ref.display_name is None else ref
            for ref in refs
        )


__all__ = ["AuditEntryBuilder"]
