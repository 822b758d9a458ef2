# activity_recorder.py — Append-only board activity trail
from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from models import ActivityLog
from side_effects import SideEffectRunner, get_side_effect_runner


class ActivityRecorder:
    """Writes one ActivityLog row per call, after the mutation has committed"""

    def __init__(self, runner: SideEffectRunner):
        self.runner = runner

    async def record(
        self,
        actor_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        description: str,
        board_id: str,
        item_id: Optional[str] = None,
    ) -> bool:
        async def _append(session: AsyncSession) -> None:
            session.add(ActivityLog(
                board_id=board_id,
                item_id=item_id,
                user_id=actor_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                description=description,
            ))

        return await self.runner.run(f"activity.{action}", _append)


def get_activity_recorder(runner: SideEffectRunner = Depends(get_side_effect_runner)) -> ActivityRecorder:
    return ActivityRecorder(runner)
