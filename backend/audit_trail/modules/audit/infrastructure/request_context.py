"""Request context propagation.

The current request's details live in a ContextVar so that the entry
builder, which runs deep inside the unit of work, can read them without a
request object being passed around.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from audit_trail.modules.audit.domain.value_objects.actor import Actor


@dataclass(frozen=True)
class RequestContext:
    """
    Details of the inbound request a change belongs to.

    ``state`` is the framework's per-request state object. The actor is read
    from it lazily (``state.user_id``) because authentication usually runs
    after the context has been captured.
    """

    request_id: str | None = None
    client_ip: str | None = None
    user_agent: str | None = None
    path: str | None = None
    actor: Any = None
    state: Any = None


request_context_var: ContextVar[RequestContext | None] = ContextVar(
    "audit_request_context", default=None
)


def current_request_context() -> RequestContext | None:
    return request_context_var.get()


@contextmanager
def request_context(context: RequestContext) -> Iterator[RequestContext]:
    """Make ``context`` current for the duration of a block."""
    token = request_context_var.set(context)
    try:
        yield context
    finally:
        request_context_var.reset(token)


class ContextRequestContextProvider:
    """RequestContextProvider reading the current RequestContext."""

    def correlation_id(self) -> str | None:
        context = request_context_var.get()
        return context.request_id if context else None

    def client_ip(self) -> str | None:
        context = request_context_var.get()
        return context.client_ip if context else None

    def user_agent(self) -> str | None:
        context = request_context_var.get()
        return context.user_agent if context else None

    def path(self) -> str | None:
        context = request_context_var.get()
        return context.path if context else None


class ContextActorResolver:
    """ActorResolver reading the current RequestContext; system outside requests."""

    def __init__(self, state_attribute: str = "user_id"):
        self.state_attribute = state_attribute

    def current_actor(self) -> Actor:
        context = request_context_var.get()
        if context is None:
            return Actor.system()

        if context.actor is not None:
            return Actor.coerce(context.actor)

        user_id = getattr(context.state, self.state_attribute, None)
        if user_id is None:
            return Actor.system()
        return Actor.user(user_id)


__all__ = [
    "ContextActorResolver",
    "ContextRequestContextProvider",
    "RequestContext",
    "current_request_context",
    "request_context",
    "request_context_var",
]
