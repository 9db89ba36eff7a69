"""Integration tests for CaptureAuditContextMiddleware."""

import re
from dataclasses import replace

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from audit_trail.modules.audit.application.services.audit_scope import current_scope
from audit_trail.modules.audit.domain.enums.audit_enums import ActionKind
from audit_trail.modules.audit.infrastructure.middleware import (
    CaptureAuditContextMiddleware,
    generate_request_id,
)
from audit_trail.modules.audit.infrastructure.request_context import (
    current_request_context,
)


@pytest.fixture
def app(components, business_sessions, orm_models):
    """Application creating customers through the audited session."""
    app = FastAPI()
    app.add_middleware(CaptureAuditContextMiddleware, **components.middleware_options())

    @app.post("/api/customers")
    def create_customer(request: Request, payload: dict):
        request.state.user_id = 5
        with business_sessions() as session:
            customer = orm_models.Customer(name=payload["name"])
            session.add(customer)
            session.commit()
            return {"id": customer.id}

    @app.get("/admin/context")
    def read_context(request: Request):
        context = current_request_context()
        return {
            "request_id": request.state.request_id,
            "path": context.path,
            "scope_id": current_scope().scope_id,
        }

    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


class TestCaptureAuditContextMiddleware:
    """Test cases for the request middleware."""

    def test_change_is_attributed_to_the_request(self, client, repository):
        # Arrange
        headers = {"X-Request-ID": "req_inbound", "User-Agent": "pytest-agent"}

        # Act
        response = client.post("/api/customers", json={"name": "Ada"}, headers=headers)

        # Assert
        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req_inbound"
        entry = repository.by_action(ActionKind.CREATED)[0]
        assert entry.entity_id == str(response.json()["id"])
        assert (entry.actor_type, entry.actor_id) == ("user", "5")
        assert entry.metadata["request_id"] == "req_inbound"
        assert entry.metadata["source"] == "api"
        assert entry.metadata["user_agent"] == "pytest-agent"
        assert entry.metadata["ip_address"] == "testclient"

    def test_correlation_header_is_accepted(self, client):
        response = client.get("/admin/context", headers={"X-Correlation-ID": "corr-1"})

        assert response.json()["request_id"] == "corr-1"
        assert response.headers["X-Request-ID"] == "corr-1"

    def test_request_id_is_generated(self, client):
        response = client.get("/admin/context")

        body = response.json()
        assert re.fullmatch(r"req_[0-9a-f]{13}", body["request_id"])
        assert response.headers["X-Request-ID"] == body["request_id"]
        assert body["path"] == "/admin/context"
        assert body["scope_id"].startswith("scope_")

    def test_each_request_gets_its_own_scope(self, client):
        first = client.get("/admin/context").json()
        second = client.get("/admin/context").json()

        assert first["scope_id"] != second["scope_id"]

    def test_context_is_cleared_after_request(self, client):
        client.get("/admin/context")

        assert current_scope() is None
        assert current_request_context() is None


def test_generate_request_id_format():
    assert re.fullmatch(r"req_[0-9a-f]{13}", generate_request_id())


def test_middleware_options_use_configured_request_id_headers(components, settings):
    # Arrange
    configured = replace(
        components, settings=replace(settings, request_id_headers=("X-Trace-ID",))
    )
    app = FastAPI()
    app.add_middleware(CaptureAuditContextMiddleware, **configured.middleware_options())

    @app.get("/ping")
    def ping(request: Request):
        return {"request_id": request.state.request_id}

    # Act
    with TestClient(app) as client:
        response = client.get("/ping", headers={"X-Trace-ID": "trace-7"})

    # Assert
    assert response.json()["request_id"] == "trace-7"
    assert response.headers["X-Trace-ID"] == "trace-7"
