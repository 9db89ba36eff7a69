"""Audit domain interfaces."""

from .ports import (
    ActorResolver,
    AuditableEntity,
    AuditDispatcher,
    AuditSink,
    DisplayNamed,
    RelationResolver,
    RequestContextProvider,
    TransactionHook,
)

__all__ = [
    "ActorResolver",
    "AuditDispatcher",
    "AuditSink",
    "AuditableEntity",
    "DisplayNamed",
    "RelationResolver",
    "RequestContextProvider",
    "TransactionHook",
]
