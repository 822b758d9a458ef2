# routers/notifications.py — Per-user notification inbox and the due-soon reminder sweep
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFound
from models import Notification, Workspace, WorkspaceMember, ensure_utc
from notification_fanout import send_due_reminders

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


# --- Schemas ---

class NotificationOut(BaseModel):
    id: str
    type: str
    title: str
    message: str
    item_id: Optional[str] = None
    board_id: Optional[str] = None
    is_read: bool
    created_at: str


def _notif_out(n: Notification) -> dict:
    return NotificationOut(
        id=n.id, type=n.type, title=n.title, message=n.message,
        item_id=n.item_id, board_id=n.board_id,
        is_read=bool(n.is_read),
        created_at=ensure_utc(n.created_at).isoformat(),
    ).model_dump()


async def _own_notification(db: AsyncSession, notification_id: str, user_id: str) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    notif = result.scalar_one_or_none()
    if not notif:
        raise NotFound("Notification", notification_id)
    return notif


# ============================================================
# LIST
# ============================================================

@router.get("")
async def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    query = select(Notification).where(Notification.user_id == user.id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    result = await db.execute(query)
    return [_notif_out(n) for n in result.scalars().all()]


@router.get("/unread-count")
async def unread_count(
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    unread = (await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user.id,
            Notification.is_read.is_(False),
        )
    )).scalar() or 0
    return {"count": unread}


# ============================================================
# MARK READ
# ============================================================

@router.post("/read-all")
async def mark_all_read(
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user.id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    await db.commit()
    return {"marked": result.rowcount or 0}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    notif = await _own_notification(db, notification_id, user.id)
    notif.is_read = True
    await db.commit()
    return _notif_out(notif)


# ============================================================
# DELETE
# ============================================================

@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    notif = await _own_notification(db, notification_id, user.id)
    await db.delete(notif)
    await db.commit()
    return {"status": "deleted"}


# ============================================================
# REMINDERS
# ============================================================

@router.post("/check-reminders")
async def check_reminders(
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    """Sweep the caller's workspaces for items due within 24 hours"""
    member_of = select(WorkspaceMember.workspace_id).where(WorkspaceMember.user_id == user.id)
    workspace_ids = (await db.execute(
        select(Workspace.id).where(or_(Workspace.owner_id == user.id, Workspace.id.in_(member_of)))
    )).scalars().all()

    sweep = await send_due_reminders(db, workspace_ids)
    return {"checked": sweep.checked, "created": sweep.created, "suppressed": sweep.suppressed}
