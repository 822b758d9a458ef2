# routers/groups.py — Groups within a board
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from access_control import EntityRef, require_access
from activity_recorder import ActivityRecorder, get_activity_recorder
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFound, ValidationError
from models import Group, isoformat_utc, utcnow
from ordering import append_at_end, move_to

router = APIRouter(prefix="/api/v1/groups", tags=["Groups"])


class GroupCreate(BaseModel):
    board_id: str
    name: str = Field(..., min_length=1, max_length=200)
    color: Optional[str] = Field(default=None, max_length=32)


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    color: Optional[str] = Field(default=None, max_length=32)


class GroupMove(BaseModel):
    position: float


def _group_out(g: Group) -> dict:
    return {
        "id": g.id,
        "board_id": g.board_id,
        "name": g.name,
        "color": g.color,
        "position": g.position,
        "created_at": isoformat_utc(g.created_at),
        "updated_at": isoformat_utc(g.updated_at),
    }


async def _load_group(db: AsyncSession, group_id: str) -> Group:
    group = await db.get(Group, group_id)
    if not group:
        raise NotFound("Group", group_id)
    return group


@router.post("", status_code=201)
async def create_group(
    data: GroupCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    activity: ActivityRecorder = Depends(get_activity_recorder),
):
    await require_access(db, user.id, EntityRef.board(data.board_id))

    group = Group(
        board_id=data.board_id,
        name=data.name.strip(),
        color=data.color,
        position=await append_at_end(db, Group, data.board_id),
    )
    db.add(group)
    await db.commit()
    await db.refresh(group)

    await activity.record(user.id, "created", "group", group.id, f'Created group "{group.name}"', board_id=group.board_id)
    return _group_out(group)


@router.patch("/{group_id}")
async def update_group(
    group_id: str,
    data: GroupUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    activity: ActivityRecorder = Depends(get_activity_recorder),
):
    await require_access(db, user.id, EntityRef.group(group_id))
    group = await _load_group(db, group_id)

    updates = data.model_dump(exclude_unset=True)
    if "name" in updates:
        name = (updates["name"] or "").strip()
        if not name:
            raise ValidationError("Group name cannot be empty")
        group.name = name
    if "color" in updates:
        group.color = updates["color"]
    group.updated_at = utcnow()

    await db.commit()
    await db.refresh(group)

    await activity.record(user.id, "updated", "group", group.id, f'Updated group "{group.name}"', board_id=group.board_id)
    return _group_out(group)


@router.put("/{group_id}/position")
async def move_group(
    group_id: str,
    data: GroupMove,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    activity: ActivityRecorder = Depends(get_activity_recorder),
):
    await require_access(db, user.id, EntityRef.group(group_id))
    group = await _load_group(db, group_id)
    await move_to(db, Group, group_id, data.position)
    await db.commit()
    await db.refresh(group)

    await activity.record(user.id, "moved", "group", group.id, f'Moved group "{group.name}"', board_id=group.board_id)
    return _group_out(group)


@router.delete("/{group_id}")
async def delete_group(
    group_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    activity: ActivityRecorder = Depends(get_activity_recorder),
):
    """Items in the group go with it"""
    await require_access(db, user.id, EntityRef.group(group_id))
    group = await _load_group(db, group_id)
    board_id, name = group.board_id, group.name

    await db.execute(delete(Group).where(Group.id == group_id))
    await db.commit()

    await activity.record(user.id, "deleted", "group", group_id, f'Deleted group "{name}"', board_id=board_id)
    return {"status": "deleted", "group_id": group_id}
