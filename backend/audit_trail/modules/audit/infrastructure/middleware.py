"""Audit context middleware.

Captures the request id, client details and path of every request, opens an
AuditScope for it and echoes the request id back in the response headers.
"""

from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from audit_trail.core.config import DEFAULT_REQUEST_ID_HEADERS
from audit_trail.core.logging import get_logger
from audit_trail.modules.audit.application.services.audit_entry_builder import (
    AuditEntryBuilder,
)
from audit_trail.modules.audit.application.services.audit_scope import AuditScope
from audit_trail.modules.audit.domain.interfaces.ports import TransactionHook
from audit_trail.modules.audit.infrastructure.request_context import (
    RequestContext,
    request_context,
)
from audit_trail.modules.audit.infrastructure.transaction import (
    ContextTransactionHook,
)

logger = get_logger(__name__)


def generate_request_id() -> str:
    """Random request id of the form ``req_<13 hex chars>``."""
    return f"req_{uuid4().hex[:13]}"


class CaptureAuditContextMiddleware(BaseHTTPMiddleware):
    """
    Per-request audit context.

    Usage Example:
        app.add_middleware(
            CaptureAuditContextMiddleware,
            builder=components.builder,
        )
    """

    def __init__(
        self,
        app: ASGIApp,
        builder: AuditEntryBuilder,
        transaction_hook: TransactionHook | None = None,
        request_id_headers: tuple[str, ...] = DEFAULT_REQUEST_ID_HEADERS,
    ):
        """
        Initialize the middleware.

        Args:
            app: ASGI application
            builder: Entry builder used by the request's scope
            transaction_hook: Hook for the request's scope; by default the
                hook bound by the ORM listener of the session in use
            request_id_headers: Headers searched for an inbound request id,
                the first one is also used for the response
        """
        super().__init__(app)
        self.builder = builder
        self.transaction_hook = transaction_hook or ContextTransactionHook()
        self.request_id_headers = request_id_headers

    def _request_id(self, request: Request) -> str:
        for header in self.request_id_headers:
            value = request.headers.get(header)
            if value:
                return value
        return generate_request_id()

    def _capture(self, request: Request, request_id: str) -> RequestContext:
        return RequestContext(
            request_id=request_id,
            client_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            path=request.url.path,
            state=request.state,
        )

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = self._request_id(request)
        request.state.request_id = request_id

        with request_context(self._capture(request, request_id)):
            with AuditScope(
                self.builder, self.transaction_hook, request_id=request_id
            ) as scope:
                logger.debug(
                    "Audit context captured",
                    path=request.url.path,
                    scope_id=scope.scope_id,
                )
                response = await call_next(request)

        response.headers[self.request_id_headers[0]] = request_id
        return response


__all__ = ["CaptureAuditContextMiddleware", "generate_request_id"]
