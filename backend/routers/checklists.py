# routers/checklists.py — Checklist entries on an item
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from access_control import EntityRef, require_access
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFound, ValidationError
from models import ChecklistItem, isoformat_utc, utcnow
from ordering import append_at_end, sibling_order, validate_position

router = APIRouter(prefix="/api/v1/checklists", tags=["Checklists"])


class ChecklistCreate(BaseModel):
    item_id: str
    text: str = Field(..., min_length=1, max_length=1000)
    hours: Optional[float] = None


class ChecklistUpdate(BaseModel):
    text: Optional[str] = Field(default=None, max_length=1000)
    is_done: Optional[bool] = None
    hours: Optional[float] = None
    position: Optional[float] = None


def _entry_out(c: ChecklistItem) -> dict:
    return {
        "id": c.id,
        "item_id": c.item_id,
        "text": c.text,
        "position": c.position,
        "is_done": bool(c.is_done),
        "hours": c.hours,
        "created_at": isoformat_utc(c.created_at),
        "updated_at": isoformat_utc(c.updated_at),
    }


def _check_hours(hours: Optional[float]) -> Optional[float]:
    if hours is None:
        return None
    if not math.isfinite(hours) or hours < 0:
        raise ValidationError("Hours must be a finite number >= 0")
    return hours


@router.get("")
async def list_checklist(
    item_id: str = Query(...),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_access(db, user.id, EntityRef.item(item_id))
    result = await db.execute(
        select(ChecklistItem)
        .where(ChecklistItem.item_id == item_id)
        .order_by(*sibling_order(ChecklistItem))
    )
    return [_entry_out(c) for c in result.scalars().all()]


@router.post("", status_code=201)
async def add_checklist_entry(
    data: ChecklistCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_access(db, user.id, EntityRef.item(data.item_id))
    text = data.text.strip()
    if not text:
        raise ValidationError("Checklist text cannot be empty")

    entry = ChecklistItem(
        item_id=data.item_id,
        text=text,
        hours=_check_hours(data.hours),
        position=await append_at_end(db, ChecklistItem, data.item_id),
    )
    db.add(entry)
    await db.commit()
    await db.refresh(entry)
    return _entry_out(entry)


@router.patch("/{entry_id}")
async def update_checklist_entry(
    entry_id: str,
    data: ChecklistUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_access(db, user.id, EntityRef.checklist_item(entry_id))
    entry = await db.get(ChecklistItem, entry_id)
    if not entry:
        raise NotFound("Checklist item", entry_id)

    updates = data.model_dump(exclude_unset=True)
    if "text" in updates:
        text = (updates["text"] or "").strip()
        if not text:
            raise ValidationError("Checklist text cannot be empty")
        entry.text = text
    if updates.get("is_done") is not None:
        entry.is_done = updates["is_done"]
    if "hours" in updates:
        entry.hours = _check_hours(updates["hours"])
    if updates.get("position") is not None:
        entry.position = validate_position(updates["position"])
    entry.updated_at = utcnow()

    await db.commit()
    await db.refresh(entry)
    return _entry_out(entry)


@router.delete("/{entry_id}")
async def delete_checklist_entry(
    entry_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_access(db, user.id, EntityRef.checklist_item(entry_id))
    await db.execute(delete(ChecklistItem).where(ChecklistItem.id == entry_id))
    await db.commit()
    return {"status": "deleted", "checklist_item_id": entry_id}
