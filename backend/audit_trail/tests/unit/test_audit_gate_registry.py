"""Tests for AuditGate and AuditRegistry."""

import asyncio

import pytest

from audit_trail.core.config import EntityAuditConfig
from audit_trail.modules.audit.application.services.audit_gate import (
    AuditGate,
    default_gate,
    get_gate,
)
from audit_trail.modules.audit.application.services.audit_registry import (
    AuditRegistry,
)
from audit_trail.modules.audit.domain.enums.audit_enums import ActionKind
from audit_trail.modules.audit.domain.errors.audit_errors import (
    AuditConfigurationError,
)


class TestAuditGate:
    """Test cases for AuditGate."""

    def test_suppression_is_scoped_to_the_block(self, gate):
        with gate.suppressed():
            assert gate.is_suppressed
            assert not gate.is_enabled("User")

        assert not gate.is_suppressed
        assert gate.is_enabled("User")

    def test_suppression_nests(self, gate):
        with gate.suppressed():
            with gate.suppressed():
                pass
            assert gate.is_suppressed

    def test_without_auditing_returns_callback_result(self, gate):
        result = gate.without_auditing(lambda: gate.is_suppressed)

        assert result is True
        assert not gate.is_suppressed

    def test_suppression_does_not_leak_between_tasks(self, gate):
        """Test one asyncio task suppressing auditing leaves others untouched."""

        async def suppressed_task(started: asyncio.Event, release: asyncio.Event):
            with gate.suppressed():
                started.set()
                await release.wait()

        async def main():
            started, release = asyncio.Event(), asyncio.Event()
            task = asyncio.create_task(suppressed_task(started, release))
            await started.wait()
            observed = gate.is_suppressed
            release.set()
            await task
            return observed

        assert asyncio.run(main()) is False

    def test_disable_and_reset(self, gate):
        gate.disable("User")
        gate.disable("Team")

        assert not gate.is_enabled("User")

        gate.reset()
        assert gate.is_enabled("User")
        assert gate.is_enabled("Team")

    def test_allows_checks_config_and_action(self, gate):
        config = EntityAuditConfig(log_updated=False)

        assert gate.allows("User", config)
        assert gate.allows("User", config, ActionKind.CREATED)
        assert not gate.allows("User", config, ActionKind.UPDATED)
        assert not gate.allows("User", EntityAuditConfig(enabled=False))

    def test_process_wide_gate(self):
        assert get_gate() is default_gate
        assert isinstance(default_gate, AuditGate)


class TestAuditRegistry:
    """Test cases for AuditRegistry."""

    def test_unregistered_type_uses_default(self):
        registry = AuditRegistry(EntityAuditConfig(log_restored=False))

        assert registry.config_for("Anything").log_restored is False
        assert not registry.is_registered("Anything")

    def test_register_with_overrides(self):
        registry = AuditRegistry()

        config = registry.register("User", sensitive_fields=("ssn",), log_deleted=False)

        assert config.sensitive_fields == ("ssn",)
        assert registry.config_for("User").log_deleted is False
        assert registry.entity_types == ["User"]

    def test_resolve_validates_relations(self):
        # Arrange
        registry = AuditRegistry()
        registry.register("Post", relations={"tags": "Tag"})

        # Act / Assert
        with pytest.raises(AuditConfigurationError) as exc_info:
            registry.resolve()
        assert exc_info.value.details["entity_type"] == "Post"
        assert not registry.is_resolved

    def test_resolve_validates_parents(self):
        registry = AuditRegistry()
        registry.register("Comment", parents={"post": ""})

        with pytest.raises(AuditConfigurationError):
            registry.resolve()

    def test_resolve_succeeds(self):
        registry = AuditRegistry()
        registry.register("Tag")
        registry.register("Post", relations={"tags": "Tag"})

        configs = registry.resolve()

        assert set(configs) == {"Post", "Tag"}
        assert registry.is_resolved
        assert registry.related_type("Post", "tags") == "Tag"

    def test_register_after_resolve_requires_new_resolve(self):
        registry = AuditRegistry()
        registry.resolve()

        registry.register("Tag")

        assert not registry.is_resolved

    def test_empty_type_tag_is_rejected(self):
        with pytest.raises(AuditConfigurationError):
            AuditRegistry().register("")
