# notification_fanout.py — Who hears about item events, and the due-soon sweep
# One notification per recipient per event: recipients are collected into an
# ordered set first, then each one is written by its own side-effect job so a
# failed write for one user never costs another user their notification.
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from item_lifecycle import COMPLETION_STATUSES
from models import Board, Group, Item, Notification, NotificationType, ensure_utc, utcnow
from side_effects import SideEffectRunner, get_side_effect_runner

logger = logging.getLogger("boardflow.notifications")

REMINDER_WINDOW = timedelta(hours=24)
REMINDER_SUPPRESSION = timedelta(hours=24)


def unique_recipients(*candidates: Optional[str]) -> List[str]:
    """Drop empties and duplicates, keeping first-seen order"""
    return list(dict.fromkeys(c for c in candidates if c))


def assignment_recipients(new_assignee_id: Optional[str], owner_id: Optional[str]) -> List[str]:
    if not new_assignee_id:
        return []
    return unique_recipients(new_assignee_id, owner_id)


def status_recipients(current_assignee_id: Optional[str], owner_id: Optional[str]) -> List[str]:
    return unique_recipients(current_assignee_id, owner_id)


def assignment_message(title: str) -> str:
    return f'"{title}" was assigned'


def status_message(title: str, previous_status: str, new_status: str) -> str:
    return f'"{title}" changed from {previous_status} to {new_status}'


def reminder_message(title: str, due_date: datetime) -> str:
    return f'"{title}" is due on {due_date.strftime("%Y-%m-%d")}'


class NotificationFanout:
    def __init__(self, runner: SideEffectRunner):
        self.runner = runner

    def _job(self, user_id: str, ntype: NotificationType, title: str, message: str,
             item_id: Optional[str], board_id: Optional[str]):
        async def _create(session: AsyncSession) -> None:
            session.add(Notification(
                user_id=user_id,
                type=ntype.value,
                title=title,
                message=message,
                item_id=item_id,
                board_id=board_id,
            ))
        return _create

    async def _fan_out(self, label: str, recipients: Sequence[str], ntype: NotificationType,
                       title: str, message: str, item_id: str, board_id: str) -> int:
        if not recipients:
            return 0
        jobs = [self._job(r, ntype, title, message, item_id, board_id) for r in recipients]
        created = await self.runner.run_all(label, jobs)
        if created < len(jobs):
            logger.warning(f"{label}: {len(jobs) - created} of {len(jobs)} notifications not created for item {item_id}")
        return created

    async def on_assignment_changed(self, item, new_assignee_id: Optional[str], *,
                                    board_id: str, owner_id: str) -> int:
        return await self._fan_out(
            "notify.assignment",
            assignment_recipients(new_assignee_id, owner_id),
            NotificationType.ASSIGNMENT,
            "Task Assigned",
            assignment_message(item.title),
            item.id,
            board_id,
        )

    async def on_status_changed(self, item, previous_status: str, new_status: str, *,
                                board_id: str, owner_id: str) -> int:
        return await self._fan_out(
            "notify.status",
            status_recipients(item.assigned_to, owner_id),
            NotificationType.STATUS,
            "Task Status Updated",
            status_message(item.title, previous_status, new_status),
            item.id,
            board_id,
        )


# ============================================================
# DUE-SOON REMINDERS
# ============================================================

@dataclass
class ReminderSweepResult:
    checked: int = 0
    created: int = 0
    suppressed: int = 0


async def _recent_reminder_exists(db: AsyncSession, user_id: str, item_id: str, since: datetime) -> bool:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.item_id == item_id,
            Notification.type == NotificationType.REMINDER.value,
            Notification.created_at >= since,
        )
    )
    return (result.scalar() or 0) > 0


async def send_due_reminders(
    db: AsyncSession,
    workspace_ids: Iterable[str],
    now: Optional[datetime] = None,
) -> ReminderSweepResult:
    """Remind assignees of items due within the next 24 hours.

    A (user, item) pair that already got a reminder in the last 24 hours is
    skipped. Commits once at the end.
    """
    now = now or utcnow()
    workspace_ids = list(workspace_ids)
    sweep = ReminderSweepResult()
    if not workspace_ids:
        return sweep

    stmt = (
        select(Item, Board.id)
        .join(Group, Item.group_id == Group.id)
        .join(Board, Group.board_id == Board.id)
        .where(
            Board.workspace_id.in_(workspace_ids),
            Item.assigned_to.is_not(None),
            Item.due_date.is_not(None),
            Item.due_date >= now,
            Item.due_date <= now + REMINDER_WINDOW,
            func.lower(Item.status).not_in(sorted(COMPLETION_STATUSES)),
        )
        .order_by(Item.due_date.asc())
    )
    rows = (await db.execute(stmt)).all()

    since = now - REMINDER_SUPPRESSION
    for item, board_id in rows:
        sweep.checked += 1
        if await _recent_reminder_exists(db, item.assigned_to, item.id, since):
            sweep.suppressed += 1
            continue
        db.add(Notification(
            user_id=item.assigned_to,
            type=NotificationType.REMINDER.value,
            title="Task Due Soon",
            message=reminder_message(item.title, ensure_utc(item.due_date)),
            item_id=item.id,
            board_id=board_id,
            created_at=now,
        ))
        sweep.created += 1

    await db.commit()
    logger.info(f"Reminder sweep: checked={sweep.checked} created={sweep.created} suppressed={sweep.suppressed}")
    return sweep


def get_notification_fanout(runner: SideEffectRunner = Depends(get_side_effect_runner)) -> NotificationFanout:
    return NotificationFanout(runner)
