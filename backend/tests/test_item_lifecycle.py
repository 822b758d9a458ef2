# tests/test_item_lifecycle.py — Pure status / archival / hours planning
from types import SimpleNamespace

import pytest

from errors import ValidationError
from item_lifecycle import (
    apply_plan, describe_update, is_completion_status, parse_hours,
    plan_item_update, plan_new_item,
)
from models import ItemPriority
from tests.conftest import utc

NOW = utc(2024, 6, 1, 12)
EARLIER = utc(2024, 5, 20, 9)


def _item(**fields):
    base = {
        "title": "Task",
        "status": "todo",
        "assigned_to": None,
        "is_archived": False,
        "completed_at": None,
        "retainer_hours": None,
    }
    base.update(fields)
    return SimpleNamespace(**base)


def _done_item(**fields):
    return _item(status="done", is_archived=True, completed_at=EARLIER, retainer_hours=2.0, **fields)


class TestParseHours:
    @pytest.mark.parametrize("value, expected", [(0, 0.0), (1.5, 1.5), ("2.25", 2.25), (" 3 ", 3.0)])
    def test_accepts(self, value, expected):
        assert parse_hours(value) == expected

    @pytest.mark.parametrize("value", [None, -0.5, "abc", True, float("nan"), float("inf"), 10**400, "1e999", [1]])
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_hours(value)


def test_completion_statuses_ignore_case():
    assert is_completion_status("Done")
    assert is_completion_status(" complete ")
    assert not is_completion_status("in_progress")
    assert not is_completion_status(None)


class TestNewItem:
    def test_default_status(self):
        fields = plan_new_item(None, is_retainer=False, now=NOW)
        assert fields == {"status": "todo", "is_archived": False, "completed_at": None, "retainer_hours": None}

    def test_completed_on_retainer_board(self):
        fields = plan_new_item("done", is_retainer=True, retainer_hours=1, now=NOW)
        assert fields["is_archived"] is True
        assert fields["completed_at"] == NOW
        assert fields["retainer_hours"] == 1.0

    def test_completed_on_retainer_board_without_hours(self):
        with pytest.raises(ValidationError):
            plan_new_item("complete", is_retainer=True, now=NOW)

    def test_hours_dropped_on_plain_board(self):
        fields = plan_new_item("done", is_retainer=False, retainer_hours=5, now=NOW)
        assert fields["retainer_hours"] is None


class TestUpdatePlan:
    def test_complete_archives(self):
        plan = plan_item_update(_item(), is_retainer=False, supplied={"status": "done"}, now=NOW)
        assert plan.status_changed
        assert plan.changes["is_archived"] is True
        assert plan.changes["completed_at"] == NOW
        assert "retainer_hours" not in plan.changes

    def test_reopen_clears_completion(self):
        plan = plan_item_update(_done_item(), is_retainer=True, supplied={"status": "stuck"}, now=NOW)
        assert plan.changes["is_archived"] is False
        assert plan.changes["completed_at"] is None
        assert plan.changes["retainer_hours"] is None

    def test_reopen_on_plain_board_keeps_legacy_hours(self):
        plan = plan_item_update(_done_item(), is_retainer=False, supplied={"status": "todo"}, now=NOW)
        assert plan.changes["completed_at"] is None
        assert "retainer_hours" not in plan.changes

    def test_done_to_complete_keeps_completion(self):
        plan = plan_item_update(_done_item(), is_retainer=True, supplied={"status": "complete"}, now=NOW)
        assert plan.status_changed
        assert plan.changes == {"status": "complete"}

    def test_retainer_gate_validates_before_any_change(self):
        item = _item()
        with pytest.raises(ValidationError):
            plan_item_update(item, is_retainer=True, supplied={"status": "done", "title": "New"}, now=NOW)
        assert item.title == "Task"
        assert item.status == "todo"

    def test_hours_correction_only_when_completed(self):
        plan = plan_item_update(_done_item(), is_retainer=True, supplied={"retainer_hours": "3.5"}, now=NOW)
        assert plan.changes == {"retainer_hours": 3.5}

        plan = plan_item_update(_item(), is_retainer=True, supplied={"retainer_hours": 3.5}, now=NOW)
        assert plan.changes == {}

    def test_same_status_is_not_a_change(self):
        plan = plan_item_update(_item(), is_retainer=False, supplied={"status": "todo"}, now=NOW)
        assert not plan.status_changed
        assert "completed_at" not in plan.changes

    def test_assignment_tracking(self):
        plan = plan_item_update(_item(assigned_to="u1"), is_retainer=False, supplied={"assigned_to": " u2 "}, now=NOW)
        assert plan.assignment_changed
        assert plan.previous_assignee == "u1"
        assert plan.new_assignee == "u2"

        plan = plan_item_update(_item(assigned_to="u1"), is_retainer=False, supplied={"assigned_to": "u1"}, now=NOW)
        assert not plan.assignment_changed

    def test_priority_and_title(self):
        plan = plan_item_update(_item(), is_retainer=False, supplied={"priority": "high", "title": " Renamed "}, now=NOW)
        assert plan.changes["priority"] is ItemPriority.HIGH
        assert plan.changes["title"] == "Renamed"

    @pytest.mark.parametrize("supplied", [{"priority": "urgent"}, {"title": ""}, {"status": " "}])
    def test_invalid_fields(self, supplied):
        with pytest.raises(ValidationError):
            plan_item_update(_item(), is_retainer=False, supplied=supplied, now=NOW)

    def test_apply_plan_writes_changes(self):
        item = _item()
        plan = plan_item_update(item, is_retainer=True, supplied={"status": "done", "retainer_hours": 1}, now=NOW)
        apply_plan(item, plan)
        assert item.status == "done"
        assert item.is_archived is True
        assert item.retainer_hours == 1.0


def test_describe_update_lists_supplied_fields():
    plan = plan_item_update(_item(), is_retainer=False, supplied={"title": "A", "notes": "n"}, now=NOW)
    assert describe_update("A", plan) == 'Updated item "A" (title, notes)'

    plan = plan_item_update(_item(), is_retainer=False, supplied={}, now=NOW)
    assert describe_update("A", plan) == 'Updated item "A"'

    # hours are not a field of a plain board's items
    plan = plan_item_update(_item(), is_retainer=False, supplied={"retainer_hours": 1}, now=NOW)
    assert describe_update("A", plan) == 'Updated item "A"'
