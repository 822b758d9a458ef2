# item_lifecycle.py — Status / archival / retainer-hours rules for items
#
#   status -> completion (done|complete): is_archived=True, completed_at=now,
#       retainer boards require retainer_hours (finite, >= 0) and store it
#   status -> anything else: is_archived=False, completed_at=None,
#       retainer boards clear retainer_hours
#   status unchanged + retainer_hours on a completed retainer item:
#       hours correction only, archival state untouched
#
# Planning is pure and validates everything before a single field is touched;
# apply_plan() then writes the whole plan onto the row in one go.
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import ValidationError
from models import ItemPriority, User, DEFAULT_STATUS

COMPLETION_STATUSES = frozenset({"done", "complete"})

# Plain fields copied through as-is when supplied
_SIMPLE_FIELDS = ("start_date", "due_date", "description", "notes")


def is_completion_status(status: Optional[str]) -> bool:
    return (status or "").strip().lower() in COMPLETION_STATUSES


def parse_hours(value: Any) -> float:
    """Retainer hours: a finite number >= 0, nothing else"""
    if value is None:
        raise ValidationError("Retainer hours are required to complete an item on a retainer board")
    if isinstance(value, bool):
        raise ValidationError("Retainer hours must be a number")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise ValidationError("Retainer hours must be a number")
    if not isinstance(value, (int, float)):
        raise ValidationError("Retainer hours must be a number")
    try:
        value = float(value)
    except OverflowError:
        raise ValidationError("Retainer hours must be a finite number")
    if not math.isfinite(value):
        raise ValidationError("Retainer hours must be a finite number")
    if value < 0:
        raise ValidationError("Retainer hours cannot be negative")
    return value


def normalize_status(status: Optional[str]) -> str:
    status = (status or "").strip()
    if not status:
        raise ValidationError("Status cannot be empty")
    return status


def normalize_assignee(assignee: Optional[str]) -> Optional[str]:
    if assignee is None:
        return None
    assignee = assignee.strip()
    return assignee or None


@dataclass
class LifecyclePlan:
    changes: Dict[str, Any] = field(default_factory=dict)
    supplied_fields: List[str] = field(default_factory=list)
    previous_status: str = DEFAULT_STATUS
    new_status: str = DEFAULT_STATUS
    previous_assignee: Optional[str] = None
    new_assignee: Optional[str] = None

    @property
    def status_changed(self) -> bool:
        return self.new_status != self.previous_status

    @property
    def assignment_changed(self) -> bool:
        return self.new_assignee != self.previous_assignee


def completion_fields(status: str, is_retainer: bool, hours: Any, now: datetime) -> Dict[str, Any]:
    """Fields that follow from entering ``status``"""
    if is_completion_status(status):
        fields = {"is_archived": True, "completed_at": now}
        if is_retainer:
            fields["retainer_hours"] = parse_hours(hours)
        return fields

    fields = {"is_archived": False, "completed_at": None}
    if is_retainer:
        fields["retainer_hours"] = None
    return fields


def plan_new_item(
    status: Optional[str],
    *,
    is_retainer: bool,
    retainer_hours: Any = None,
    now: datetime,
) -> Dict[str, Any]:
    """Lifecycle fields for a freshly created item"""
    status = normalize_status(status or DEFAULT_STATUS)
    fields = completion_fields(status, is_retainer, retainer_hours, now)
    fields["status"] = status
    fields.setdefault("retainer_hours", None)
    return fields


def plan_item_update(item, *, is_retainer: bool, supplied: Dict[str, Any], now: datetime) -> LifecyclePlan:
    """Work out every field change for a partial update; raises ValidationError"""
    plan = LifecyclePlan(
        supplied_fields=[k for k in supplied if k != "retainer_hours" or is_retainer],
        previous_status=item.status,
        new_status=item.status,
        previous_assignee=item.assigned_to,
        new_assignee=item.assigned_to,
    )
    changes = plan.changes

    if "title" in supplied:
        title = (supplied["title"] or "").strip()
        if not title:
            raise ValidationError("Title cannot be empty")
        changes["title"] = title

    if supplied.get("priority") is not None:
        try:
            changes["priority"] = ItemPriority(supplied["priority"])
        except ValueError:
            raise ValidationError(f"Unknown priority '{supplied['priority']}'")

    for name in _SIMPLE_FIELDS:
        if name in supplied:
            changes[name] = supplied[name]

    if "assigned_to" in supplied:
        plan.new_assignee = normalize_assignee(supplied["assigned_to"])
        changes["assigned_to"] = plan.new_assignee

    if "status" in supplied and supplied["status"] is not None:
        plan.new_status = normalize_status(supplied["status"])
        changes["status"] = plan.new_status

    was_completed = is_completion_status(plan.previous_status)
    now_completed = is_completion_status(plan.new_status)
    hours_supplied = "retainer_hours" in supplied

    if plan.status_changed and not (was_completed and now_completed):
        changes.update(completion_fields(plan.new_status, is_retainer, supplied.get("retainer_hours"), now))
    elif hours_supplied and is_retainer and was_completed:
        # done <-> complete counts as staying completed
        changes["retainer_hours"] = parse_hours(supplied["retainer_hours"])

    return plan


def apply_plan(item, plan: LifecyclePlan) -> None:
    for name, value in plan.changes.items():
        setattr(item, name, value)


def describe_update(title: str, plan: LifecyclePlan) -> str:
    if plan.supplied_fields:
        return f'Updated item "{title}" ({", ".join(plan.supplied_fields)})'
    return f'Updated item "{title}"'


async def ensure_assignee_exists(db: AsyncSession, assignee_id: Optional[str]) -> None:
    if assignee_id is None:
        return
    result = await db.execute(select(User.id).where(User.id == assignee_id))
    if result.scalar_one_or_none() is None:
        raise ValidationError("Assigned user does not exist")
