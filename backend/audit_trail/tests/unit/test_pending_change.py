"""Tests for PendingChange merge rules."""

import pytest

from audit_trail.modules.audit.domain.entities.pending_change import (
    PendingChange,
    PendingKey,
)
from audit_trail.modules.audit.domain.enums.audit_enums import ActionKind
from audit_trail.modules.audit.domain.value_objects.changes import (
    FieldChange,
    RelationChange,
)

KEY = PendingKey("scope_1", "Invoice", "42")


def pending(action: ActionKind) -> PendingChange:
    return PendingChange(key=KEY, entity=object(), action=action)


class TestActionMerge:
    """Test cases for action dominance."""

    @pytest.mark.parametrize(
        ("first", "second", "expected"),
        [
            (ActionKind.CREATED, ActionKind.UPDATED, ActionKind.CREATED),
            (ActionKind.UPDATED, ActionKind.CREATED, ActionKind.CREATED),
            (ActionKind.CREATED, ActionKind.DELETED, ActionKind.DELETED),
            (ActionKind.DELETED, ActionKind.CREATED, ActionKind.DELETED),
            (ActionKind.DELETED, ActionKind.UPDATED, ActionKind.DELETED),
            (ActionKind.UPDATED, ActionKind.RELATIONS_UPDATED, ActionKind.UPDATED),
            (
                ActionKind.RELATIONS_UPDATED,
                ActionKind.UPDATED,
                ActionKind.RELATIONS_UPDATED,
            ),
            (ActionKind.RELATIONS_UPDATED, ActionKind.CREATED, ActionKind.CREATED),
            (ActionKind.RESTORED, ActionKind.UPDATED, ActionKind.RESTORED),
        ],
    )
    def test_merge_action(self, first, second, expected):
        # Arrange
        change = pending(first)

        # Act
        change.merge(first, {}, {})
        change.merge(second, {}, {})

        # Assert
        assert change.action is expected
        assert change.notifications == 2


class TestAttributeMerge:
    """Test cases for attribute baselines."""

    def test_first_old_value_is_kept(self):
        """Test a field changed twice keeps its original baseline."""
        # Arrange
        change = pending(ActionKind.UPDATED)

        # Act
        change.merge(ActionKind.UPDATED, {"status": FieldChange("draft", "sent")}, {})
        change.merge(ActionKind.UPDATED, {"status": FieldChange("sent", "paid")}, {})

        # Assert
        assert change.attributes == {"status": FieldChange("draft", "paid")}

    def test_fields_from_every_notification_are_kept(self):
        change = pending(ActionKind.CREATED)

        change.merge(ActionKind.CREATED, {"name": FieldChange(None, "A")}, {})
        change.merge(ActionKind.UPDATED, {"age": FieldChange(None, 30)}, {})

        assert set(change.attributes) == {"name", "age"}

    def test_chain_keeps_earliest_old_and_latest_new(self):
        """Test a field hit by four notifications spans first old to last new."""
        # Arrange
        change = pending(ActionKind.UPDATED)
        steps = [
            ("draft", "sent"),
            ("sent", "paid"),
            ("paid", "refunded"),
            ("refunded", "closed"),
        ]

        # Act
        for old, new in steps:
            change.merge(ActionKind.UPDATED, {"status": FieldChange(old, new)}, {})

        # Assert
        assert change.attributes == {"status": FieldChange("draft", "closed")}
        assert change.notifications == 4


class TestMergeOrder:
    """Test cases for order independence of disjoint notifications."""

    NOTIFICATIONS = {
        "name": (ActionKind.UPDATED, {"name": FieldChange("Ada", "Grace")}),
        "age": (ActionKind.UPDATED, {"age": FieldChange(30, 31)}),
        "created": (ActionKind.CREATED, {"email": FieldChange(None, "a@example.com")}),
        "deleted": (ActionKind.DELETED, {"nickname": FieldChange("ada", None)}),
    }

    @staticmethod
    def merged(names: list[str]) -> PendingChange:
        first_action = TestMergeOrder.NOTIFICATIONS[names[0]][0]
        change = pending(first_action)
        for name in names:
            action, attributes = TestMergeOrder.NOTIFICATIONS[name]
            change.merge(action, attributes, {})
        return change

    @pytest.mark.parametrize(
        "names",
        [
            ["name", "age"],
            ["created", "age"],
            ["deleted", "name"],
            ["created", "name", "age"],
        ],
    )
    def test_order_does_not_change_the_result(self, names):
        # Arrange
        forward = self.merged(names)

        # Act
        backward = self.merged(list(reversed(names)))

        # Assert
        assert backward.attributes == forward.attributes
        assert backward.resolved_action() is forward.resolved_action()


class TestRelationMerge:
    """Test cases for relation accumulation."""

    def test_members_are_appended_in_order(self):
        change = pending(ActionKind.RELATIONS_UPDATED)

        change.merge(
            ActionKind.RELATIONS_UPDATED, {}, {"tags": RelationChange.of(added=[1])}
        )
        change.merge(
            ActionKind.RELATIONS_UPDATED,
            {},
            {"tags": RelationChange.of(added=[2], removed=[1])},
        )

        assert [ref.id for ref in change.relations["tags"].added] == [1, 2]
        assert [ref.id for ref in change.relations["tags"].removed] == [1]


class TestEmission:
    """Test cases for should_emit and resolved_action."""

    @pytest.mark.parametrize("action", [ActionKind.UPDATED, ActionKind.RELATIONS_UPDATED])
    def test_empty_updates_are_not_emitted(self, action):
        change = pending(action)
        change.merge(action, {}, {"tags": RelationChange()})

        assert change.is_empty
        assert change.should_emit() is False

    @pytest.mark.parametrize("action", [ActionKind.CREATED, ActionKind.DELETED])
    def test_lifecycle_actions_are_emitted_even_when_empty(self, action):
        change = pending(action)

        assert change.should_emit() is True

    def test_relations_update_with_fields_resolves_to_updated(self):
        change = pending(ActionKind.RELATIONS_UPDATED)
        change.merge(
            ActionKind.RELATIONS_UPDATED,
            {"name": FieldChange("a", "b")},
            {"tags": RelationChange.of(added=[1])},
        )

        assert change.resolved_action() is ActionKind.UPDATED

    def test_relations_only_stays_relations_updated(self):
        change = pending(ActionKind.RELATIONS_UPDATED)
        change.merge(
            ActionKind.RELATIONS_UPDATED, {}, {"tags": RelationChange.of(added=[1])}
        )

        assert change.resolved_action() is ActionKind.RELATIONS_UPDATED


def test_context_merge_later_values_win():
    change = pending(ActionKind.UPDATED)

    change.merge_context("first", {"a": 1, "b": 1})
    change.merge_context(None, {"b": 2})

    assert change.actor == "first"
    assert change.metadata == {"a": 1, "b": 2}


def test_key_string_form():
    assert str(KEY) == "scope_1:Invoice:42"


def test_copy_is_independent():
    change = pending(ActionKind.UPDATED)
    change.merge(ActionKind.UPDATED, {"status": FieldChange("draft", "sent")}, {})

    copied = change.copy()
    change.merge(ActionKind.DELETED, {"total": FieldChange(10, None)}, {})

    assert copied.action is ActionKind.UPDATED
    assert copied.attributes == {"status": FieldChange("draft", "sent")}
    assert copied.key == change.key
