# routers/boards.py — Boards: CRUD, full board view, date range, retainer hours, activity
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from access_control import EntityRef, require_access, require_owner
from activity_recorder import ActivityRecorder, get_activity_recorder
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFound, ValidationError
from models import ActivityLog, Board, Group, Item, isoformat_utc, utcnow
from ordering import sibling_order
from roadmap import range_for_board, retainer_report
from routers.items import assignee_map, item_counts, item_to_out

router = APIRouter(prefix="/api/v1/boards", tags=["Boards"])


# ============================================================
# SCHEMAS
# ============================================================

class BoardCreate(BaseModel):
    workspace_id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    is_retainer: bool = False


class BoardUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    is_retainer: Optional[bool] = None


class BoardOut(BaseModel):
    id: str
    workspace_id: str
    name: str
    description: Optional[str] = None
    is_retainer: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def _board_out(b: Board) -> dict:
    return BoardOut(
        id=b.id,
        workspace_id=b.workspace_id,
        name=b.name,
        description=b.description,
        is_retainer=bool(b.is_retainer),
        created_at=isoformat_utc(b.created_at),
        updated_at=isoformat_utc(b.updated_at),
    ).model_dump()


def _parse_archived(value: Optional[str]) -> Optional[bool]:
    """'true'/'1' -> archived only, 'all' -> no filter, anything else -> open only"""
    value = (value or "").strip().lower()
    if value == "all":
        return None
    return value in ("true", "1")


async def _load_board(db: AsyncSession, board_id: str) -> Board:
    board = await db.get(Board, board_id)
    if not board:
        raise NotFound("Board", board_id)
    return board


# ============================================================
# BOARDS
# ============================================================

@router.post("", status_code=201)
async def create_board(
    data: BoardCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    activity: ActivityRecorder = Depends(get_activity_recorder),
):
    await require_access(db, user.id, EntityRef.workspace(data.workspace_id))

    board = Board(
        workspace_id=data.workspace_id,
        name=data.name.strip(),
        description=data.description,
        is_retainer=data.is_retainer,
    )
    db.add(board)
    await db.commit()
    await db.refresh(board)

    await activity.record(user.id, "created", "board", board.id, f'Created board "{board.name}"', board_id=board.id)
    return _board_out(board)


@router.get("")
async def list_boards(
    workspace_id: str = Query(...),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_access(db, user.id, EntityRef.workspace(workspace_id))
    result = await db.execute(
        select(Board).where(Board.workspace_id == workspace_id).order_by(Board.created_at.desc())
    )
    return [_board_out(b) for b in result.scalars().all()]


@router.get("/{board_id}")
async def get_board(
    board_id: str,
    archived: Optional[str] = Query(default="false"),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Board with its groups and items in render order"""
    await require_access(db, user.id, EntityRef.board(board_id))
    board = await _load_board(db, board_id)

    groups = (await db.execute(
        select(Group).where(Group.board_id == board_id).order_by(*sibling_order(Group))
    )).scalars().all()

    stmt = (
        select(Item)
        .join(Group, Item.group_id == Group.id)
        .where(Group.board_id == board_id)
        .order_by(*sibling_order(Item))
    )
    archived_filter = _parse_archived(archived)
    if archived_filter is not None:
        stmt = stmt.where(Item.is_archived.is_(archived_filter))
    items = (await db.execute(stmt)).scalars().all()

    counts = await item_counts(db, [i.id for i in items])
    assignees = await assignee_map(db, items)

    by_group = {g.id: [] for g in groups}
    for item in items:
        by_group[item.group_id].append(
            item_to_out(item, counts[item.id], assignees.get(item.assigned_to))
        )

    out = _board_out(board)
    out["groups"] = [
        {
            "id": g.id,
            "name": g.name,
            "color": g.color,
            "position": g.position,
            "items": by_group[g.id],
        }
        for g in groups
    ]
    return out


@router.patch("/{board_id}")
async def update_board(
    board_id: str,
    data: BoardUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    activity: ActivityRecorder = Depends(get_activity_recorder),
):
    """Toggling is_retainer leaves hours already recorded on items alone"""
    await require_access(db, user.id, EntityRef.board(board_id))
    board = await _load_board(db, board_id)

    updates = data.model_dump(exclude_unset=True)
    if "name" in updates:
        if not (updates["name"] or "").strip():
            raise ValidationError("Board name cannot be empty")
        updates["name"] = updates["name"].strip()
    if "is_retainer" in updates and updates["is_retainer"] is None:
        updates.pop("is_retainer")

    for field, value in updates.items():
        setattr(board, field, value)
    board.updated_at = utcnow()
    await db.commit()
    await db.refresh(board)

    await activity.record(user.id, "updated", "board", board.id, f'Updated board "{board.name}"', board_id=board.id)
    return _board_out(board)


@router.delete("/{board_id}")
async def delete_board(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Workspace owner only; groups, items and activity cascade"""
    await require_owner(db, user.id, EntityRef.board(board_id))
    await db.execute(delete(Board).where(Board.id == board_id))
    await db.commit()
    return {"status": "deleted", "board_id": board_id}


# ============================================================
# READ-SIDE VIEWS
# ============================================================

@router.get("/{board_id}/range")
async def get_board_range(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_access(db, user.id, EntityRef.board(board_id))
    span = await range_for_board(db, board_id)
    if span is None:
        return {"board_id": board_id, "range": None}
    return {"board_id": board_id, "range": {"start": isoformat_utc(span["start"]), "end": isoformat_utc(span["end"])}}


@router.get("/{board_id}/retainer-hours")
async def get_retainer_hours(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_access(db, user.id, EntityRef.board(board_id))
    board = await _load_board(db, board_id)
    report = await retainer_report(db, board_id)
    report["is_retainer"] = bool(board.is_retainer)
    return report


@router.get("/{board_id}/activity")
async def get_board_activity(
    board_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_access(db, user.id, EntityRef.board(board_id))
    result = await db.execute(
        select(ActivityLog)
        .where(ActivityLog.board_id == board_id)
        .options(selectinload(ActivityLog.user))
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
    )
    return [
        {
            "id": a.id,
            "board_id": a.board_id,
            "item_id": a.item_id,
            "user_id": a.user_id,
            "user_name": a.user.name if a.user else "Unknown",
            "action": a.action,
            "entity_type": a.entity_type,
            "entity_id": a.entity_id,
            "description": a.description,
            "created_at": isoformat_utc(a.created_at),
        }
        for a in result.scalars().all()
    ]
