# roadmap.py — Read-side date ranges for boards and workspaces
# Nothing here is stored; every call recomputes from the current items.
#   effective start = start_date or due_date or completed_at
#   effective end   = completed_at or due_date or start_date
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from item_lifecycle import is_completion_status
from models import Board, Group, Item, ensure_utc


def effective_start(item) -> Optional[datetime]:
    return ensure_utc(item.start_date or item.due_date or item.completed_at)


def effective_end(item) -> Optional[datetime]:
    return ensure_utc(item.completed_at or item.due_date or item.start_date)


def board_range(items: Iterable) -> Optional[Dict[str, datetime]]:
    """[min start, max end] over the dated items, or None if none are dated"""
    starts, ends = [], []
    for item in items:
        start, end = effective_start(item), effective_end(item)
        if start is not None:
            starts.append(start)
        if end is not None:
            ends.append(end)
    if not starts:
        return None
    return {"start": min(starts), "end": max(ends)}


async def _items_for_boards(db: AsyncSession, board_ids: List[str]) -> Dict[str, list]:
    by_board: Dict[str, list] = {board_id: [] for board_id in board_ids}
    if not board_ids:
        return by_board
    result = await db.execute(
        select(Item, Group.board_id)
        .join(Group, Item.group_id == Group.id)
        .where(Group.board_id.in_(board_ids))
    )
    for item, board_id in result.all():
        by_board[board_id].append(item)
    return by_board


async def range_for_board(db: AsyncSession, board_id: str) -> Optional[Dict[str, datetime]]:
    by_board = await _items_for_boards(db, [board_id])
    return board_range(by_board[board_id])


async def workspace_roadmap(db: AsyncSession, workspace_id: str) -> List[Dict[str, Any]]:
    """Per-board ranges for a workspace, earliest start first"""
    boards = (await db.execute(
        select(Board).where(Board.workspace_id == workspace_id).order_by(Board.created_at.asc())
    )).scalars().all()
    by_board = await _items_for_boards(db, [b.id for b in boards])

    entries = []
    for board in boards:
        span = board_range(by_board[board.id])
        if span is None:
            continue
        entries.append({
            "board_id": board.id,
            "name": board.name,
            "start": span["start"],
            "end": span["end"],
        })
    entries.sort(key=lambda e: e["start"])
    return entries


# ============================================================
# RETAINER HOURS
# ============================================================

def retainer_hours_by_month(items: Iterable) -> List[Dict[str, Any]]:
    """Completed items with hours, grouped by completion month (YYYY-MM)"""
    months: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    dated = [
        i for i in items
        if i.retainer_hours is not None and i.completed_at is not None and is_completion_status(i.status)
    ]
    dated.sort(key=lambda i: ensure_utc(i.completed_at))
    for item in dated:
        completed = ensure_utc(item.completed_at)
        key = completed.strftime("%Y-%m")
        bucket = months.setdefault(key, {"month": key, "total_hours": 0.0, "items": []})
        bucket["total_hours"] += item.retainer_hours
        bucket["items"].append({
            "id": item.id,
            "title": item.title,
            "completed_at": completed.isoformat(),
            "retainer_hours": item.retainer_hours,
        })
    for bucket in months.values():
        bucket["total_hours"] = round(bucket["total_hours"], 2)
    return list(months.values())


async def retainer_report(db: AsyncSession, board_id: str) -> Dict[str, Any]:
    by_board = await _items_for_boards(db, [board_id])
    months = retainer_hours_by_month(by_board[board_id])
    return {
        "board_id": board_id,
        "months": months,
        "total_hours": round(sum(m["total_hours"] for m in months), 2),
    }
