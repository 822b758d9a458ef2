# routers/ai.py — AI brief: requirement text in, structured task brief out
import os
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from access_control import EntityRef, require_access
from activity_recorder import ActivityRecorder, get_activity_recorder
from ai_brief import BriefGenerator, get_brief_generator
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFound, ValidationError
from models import ChecklistItem, Group, Item, User, utcnow
from ordering import append_at_end

router = APIRouter(prefix="/api/v1/ai", tags=["AI Brief"])

MIN_INPUT_LENGTH = 10


class BriefRequest(BaseModel):
    input_text: str = Field(..., max_length=20000)
    context: Optional[str] = Field(default=None, max_length=5000)
    item_id: Optional[str] = None

    @field_validator("input_text")
    @classmethod
    def validate_input(cls, v: str) -> str:
        if len(v.strip()) < MIN_INPUT_LENGTH:
            raise ValueError(f"input_text must be at least {MIN_INPUT_LENGTH} characters")
        return v


async def _resolve_api_key(db: AsyncSession, user_id: str) -> str:
    """The caller's own key wins over the service-wide one"""
    result = await db.execute(select(User.groq_api_key).where(User.id == user_id))
    api_key = result.scalar_one_or_none() or os.getenv("GROQ_API_KEY")
    if not api_key:
        raise ValidationError("No AI API key configured. Add one under /api/v1/auth/ai-key")
    return api_key


@router.post("/brief")
async def generate_brief(
    data: BriefRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    generator: BriefGenerator = Depends(get_brief_generator),
    activity: ActivityRecorder = Depends(get_activity_recorder),
):
    """Generate a brief; with item_id, write it onto that item as description + checklist"""
    if data.item_id:
        await require_access(db, user.id, EntityRef.item(data.item_id))

    api_key = await _resolve_api_key(db, user.id)
    brief = await generator.generate(api_key, data.input_text, data.context)

    if not data.item_id:
        return {**brief, "applied_item_id": None}

    item = await db.get(Item, data.item_id)
    if not item:
        raise NotFound("Item", data.item_id)
    board_id = (await db.execute(select(Group.board_id).where(Group.id == item.group_id))).scalar_one()

    item.description = brief["summary"]
    item.updated_at = utcnow()
    position = await append_at_end(db, ChecklistItem, item.id)
    for offset, step in enumerate(brief["steps"]):
        db.add(ChecklistItem(item_id=item.id, text=step, position=position + offset))
    await db.commit()

    await activity.record(
        user.id, "updated", "item", item.id, f'Applied AI brief to "{item.title}"',
        board_id=board_id, item_id=item.id,
    )
    return {**brief, "applied_item_id": item.id}
