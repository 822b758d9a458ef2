# routers/items.py — Items: create, my items, update lifecycle, move, delete
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import case, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from access_control import EntityRef, require_access
from activity_recorder import ActivityRecorder, get_activity_recorder
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFound, ValidationError
from item_lifecycle import (
    apply_plan, describe_update, ensure_assignee_exists, normalize_assignee,
    plan_item_update, plan_new_item,
)
from models import (
    Board, ChecklistItem, Comment, Group, Item, ItemPriority, User,
    Workspace, WorkspaceMember, ensure_utc, isoformat_utc, utcnow,
)
from notification_fanout import NotificationFanout, get_notification_fanout
from ordering import append_at_end, move_to

router = APIRouter(prefix="/api/v1/items", tags=["Items"])


# ============================================================
# SCHEMAS
# ============================================================

class ItemCreate(BaseModel):
    group_id: str
    title: str = Field(..., min_length=1, max_length=500)
    status: Optional[str] = None
    priority: str = "medium"
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    retainer_hours: Optional[Any] = None


class ItemUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=500)
    status: Optional[str] = None
    priority: Optional[str] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    retainer_hours: Optional[Any] = None


class ItemMove(BaseModel):
    position: float
    group_id: Optional[str] = None


class AssigneeOut(BaseModel):
    id: str
    name: str
    email: str
    avatar_url: Optional[str] = None


class ItemOut(BaseModel):
    id: str
    group_id: str
    title: str
    position: float
    status: str
    priority: str
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    completed_at: Optional[str] = None
    assigned_to: Optional[str] = None
    assignee: Optional[AssigneeOut] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    is_archived: bool
    retainer_hours: Optional[float] = None
    comment_count: int = 0
    checklist_total: int = 0
    checklist_done: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def item_to_out(item: Item, counts: Optional[dict] = None, assignee: Optional[User] = None) -> dict:
    counts = counts or {}
    return ItemOut(
        id=item.id,
        group_id=item.group_id,
        title=item.title,
        position=item.position,
        status=item.status,
        priority=item.priority.value if hasattr(item.priority, "value") else str(item.priority),
        start_date=isoformat_utc(item.start_date),
        due_date=isoformat_utc(item.due_date),
        completed_at=isoformat_utc(item.completed_at),
        assigned_to=item.assigned_to,
        assignee=AssigneeOut(
            id=assignee.id, name=assignee.name or "", email=assignee.email, avatar_url=assignee.avatar_url,
        ) if assignee else None,
        description=item.description,
        notes=item.notes,
        is_archived=bool(item.is_archived),
        retainer_hours=item.retainer_hours,
        comment_count=counts.get("comments", 0),
        checklist_total=counts.get("checklist_total", 0),
        checklist_done=counts.get("checklist_done", 0),
        created_at=isoformat_utc(item.created_at),
        updated_at=isoformat_utc(item.updated_at),
    ).model_dump()


async def item_counts(db: AsyncSession, item_ids: List[str]) -> Dict[str, dict]:
    """Comment and checklist counts per item id"""
    counts = {item_id: {"comments": 0, "checklist_total": 0, "checklist_done": 0} for item_id in item_ids}
    if not item_ids:
        return counts

    comments = await db.execute(
        select(Comment.item_id, func.count(Comment.id))
        .where(Comment.item_id.in_(item_ids))
        .group_by(Comment.item_id)
    )
    for item_id, n in comments.all():
        counts[item_id]["comments"] = n

    checklist = await db.execute(
        select(
            ChecklistItem.item_id,
            func.count(ChecklistItem.id),
            func.sum(case((ChecklistItem.is_done.is_(True), 1), else_=0)),
        )
        .where(ChecklistItem.item_id.in_(item_ids))
        .group_by(ChecklistItem.item_id)
    )
    for item_id, total, done in checklist.all():
        counts[item_id]["checklist_total"] = total
        counts[item_id]["checklist_done"] = int(done or 0)
    return counts


async def assignee_map(db: AsyncSession, items: Iterable[Item]) -> Dict[str, User]:
    ids = {i.assigned_to for i in items if i.assigned_to}
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in result.scalars().all()}


async def _board_for_group(db: AsyncSession, group_id: str) -> Board:
    result = await db.execute(
        select(Board).join(Group, Group.board_id == Board.id).where(Group.id == group_id)
    )
    board = result.scalar_one_or_none()
    if not board:
        raise NotFound("Board")
    return board


async def _load_item(db: AsyncSession, item_id: str) -> Item:
    item = await db.get(Item, item_id)
    if not item:
        raise NotFound("Item", item_id)
    return item


async def _single_item_out(db: AsyncSession, item: Item, board_id: Optional[str] = None) -> dict:
    counts = await item_counts(db, [item.id])
    assignee = await db.get(User, item.assigned_to) if item.assigned_to else None
    out = item_to_out(item, counts[item.id], assignee)
    if board_id:
        out["board_id"] = board_id
    return out


def _normalize_dates(values: Dict[str, Any]) -> None:
    for name in ("start_date", "due_date"):
        if values.get(name) is not None:
            values[name] = ensure_utc(values[name])


# ============================================================
# CREATE / READ
# ============================================================

@router.post("", status_code=201)
async def create_item(
    data: ItemCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    activity: ActivityRecorder = Depends(get_activity_recorder),
    fanout: NotificationFanout = Depends(get_notification_fanout),
):
    grant = await require_access(db, user.id, EntityRef.group(data.group_id))
    board = await _board_for_group(db, data.group_id)

    title = data.title.strip()
    if not title:
        raise ValidationError("Title cannot be empty")
    try:
        priority = ItemPriority(data.priority)
    except ValueError:
        raise ValidationError(f"Unknown priority '{data.priority}'")

    assignee_id = normalize_assignee(data.assigned_to)
    await ensure_assignee_exists(db, assignee_id)

    lifecycle = plan_new_item(
        data.status, is_retainer=board.is_retainer, retainer_hours=data.retainer_hours, now=utcnow(),
    )
    dates = {"start_date": data.start_date, "due_date": data.due_date}
    _normalize_dates(dates)

    item = Item(
        group_id=data.group_id,
        title=title,
        position=await append_at_end(db, Item, data.group_id),
        priority=priority,
        assigned_to=assignee_id,
        description=data.description,
        notes=data.notes,
        **dates,
        **lifecycle,
    )
    db.add(item)
    await db.commit()
    await db.refresh(item)

    await activity.record(
        user.id, "created", "item", item.id, f'Created item "{item.title}"',
        board_id=board.id, item_id=item.id,
    )
    if assignee_id:
        await fanout.on_assignment_changed(item, assignee_id, board_id=board.id, owner_id=grant.owner_id)

    return await _single_item_out(db, item, board.id)


@router.get("/mine")
async def my_items(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Open items assigned to the caller: soonest due first, undated last, then newest"""
    member_of = select(WorkspaceMember.workspace_id).where(WorkspaceMember.user_id == user.id)
    result = await db.execute(
        select(Item, Board.id, Board.name)
        .join(Group, Item.group_id == Group.id)
        .join(Board, Group.board_id == Board.id)
        .join(Workspace, Board.workspace_id == Workspace.id)
        .where(
            Item.assigned_to == user.id,
            Item.is_archived.is_(False),
            or_(Workspace.owner_id == user.id, Workspace.id.in_(member_of)),
        )
        .order_by(Item.due_date.is_(None).asc(), Item.due_date.asc(), Item.created_at.desc())
    )
    rows = result.all()
    counts = await item_counts(db, [item.id for item, _, _ in rows])
    me = await db.get(User, user.id)

    out = []
    for item, board_id, board_name in rows:
        entry = item_to_out(item, counts[item.id], me)
        entry["board_id"] = board_id
        entry["board_name"] = board_name
        out.append(entry)
    return out


@router.get("/{item_id}")
async def get_item(
    item_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_access(db, user.id, EntityRef.item(item_id))
    item = await _load_item(db, item_id)
    board = await _board_for_group(db, item.group_id)
    return await _single_item_out(db, item, board.id)


# ============================================================
# UPDATE (lifecycle)
# ============================================================

@router.patch("/{item_id}")
async def update_item(
    item_id: str,
    data: ItemUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    activity: ActivityRecorder = Depends(get_activity_recorder),
    fanout: NotificationFanout = Depends(get_notification_fanout),
):
    grant = await require_access(db, user.id, EntityRef.item(item_id))
    item = await _load_item(db, item_id)
    board = await _board_for_group(db, item.group_id)

    supplied = data.model_dump(exclude_unset=True)
    _normalize_dates(supplied)
    if "assigned_to" in supplied:
        await ensure_assignee_exists(db, normalize_assignee(supplied["assigned_to"]))

    # Validation happens entirely inside the plan; nothing is written on failure
    plan = plan_item_update(item, is_retainer=board.is_retainer, supplied=supplied, now=utcnow())
    apply_plan(item, plan)
    item.updated_at = utcnow()
    await db.commit()
    await db.refresh(item)

    await activity.record(
        user.id, "updated", "item", item.id, describe_update(item.title, plan),
        board_id=board.id, item_id=item.id,
    )
    if plan.assignment_changed and plan.new_assignee:
        await fanout.on_assignment_changed(item, plan.new_assignee, board_id=board.id, owner_id=grant.owner_id)
    if plan.status_changed:
        await fanout.on_status_changed(
            item, plan.previous_status, plan.new_status, board_id=board.id, owner_id=grant.owner_id,
        )

    return await _single_item_out(db, item, board.id)


# ============================================================
# MOVE / DELETE
# ============================================================

@router.put("/{item_id}/position")
async def move_item(
    item_id: str,
    data: ItemMove,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    activity: ActivityRecorder = Depends(get_activity_recorder),
):
    """Reposition an item, optionally into another group of the same board"""
    await require_access(db, user.id, EntityRef.item(item_id))
    item = await _load_item(db, item_id)
    board = await _board_for_group(db, item.group_id)

    new_group_id = None
    if data.group_id and data.group_id != item.group_id:
        await require_access(db, user.id, EntityRef.group(data.group_id))
        target_board = await _board_for_group(db, data.group_id)
        if target_board.id != board.id:
            raise ValidationError("Items can only move between groups of the same board")
        new_group_id = data.group_id

    await move_to(db, Item, item_id, data.position, new_group_id)
    await db.commit()
    await db.refresh(item)

    await activity.record(
        user.id, "moved", "item", item.id, f'Moved item "{item.title}"',
        board_id=board.id, item_id=item.id,
    )
    return await _single_item_out(db, item, board.id)


@router.delete("/{item_id}")
async def delete_item(
    item_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    activity: ActivityRecorder = Depends(get_activity_recorder),
):
    await require_access(db, user.id, EntityRef.item(item_id))
    item = await _load_item(db, item_id)
    board = await _board_for_group(db, item.group_id)
    title = item.title

    await db.execute(delete(Item).where(Item.id == item_id))
    await db.commit()

    await activity.record(
        user.id, "deleted", "item", item_id, f'Deleted item "{title}"', board_id=board.id, item_id=item_id,
    )
    return {"status": "deleted", "item_id": item_id}
