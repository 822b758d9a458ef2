# ordering.py — Sibling positions for groups (per board) and items (per group)
# New siblings go to max(position) + 1, or 1 for the first one. Existing
# siblings are never renumbered. Render order is (position, created_at, id) so
# two siblings that raced onto the same position still sort deterministically.
import math
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from errors import ValidationError
from models import ChecklistItem, Group, Item, utcnow

# model -> parent-id column
_PARENT_COLUMN = {
    Group: Group.board_id,
    Item: Item.group_id,
    ChecklistItem: ChecklistItem.item_id,
}


def sibling_order(model):
    return (model.position.asc(), model.created_at.asc(), model.id.asc())


async def append_at_end(db: AsyncSession, model, parent_id: str) -> float:
    parent_col = _PARENT_COLUMN[model]
    result = await db.execute(select(func.max(model.position)).where(parent_col == parent_id))
    max_pos = result.scalar()
    if max_pos is None:
        return 1
    return max_pos + 1


def validate_position(position) -> float:
    if isinstance(position, bool) or not isinstance(position, (int, float)):
        raise ValidationError("position must be a number")
    if not math.isfinite(position):
        raise ValidationError("position must be a finite number")
    return float(position)


async def move_to(
    db: AsyncSession,
    model,
    entity_id: str,
    position: float,
    new_parent_id: Optional[str] = None,
) -> None:
    """Overwrite position (and optionally the parent) in a single UPDATE"""
    values = {"position": validate_position(position), "updated_at": utcnow()}
    if new_parent_id is not None:
        values[_PARENT_COLUMN[model].key] = new_parent_id
    await db.execute(update(model).where(model.id == entity_id).values(**values))
