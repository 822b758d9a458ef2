# side_effects.py — Best-effort writes issued after a primary mutation commits
# Every job runs in its own session. A failing job is rolled back, logged and
# dropped; it never reaches the caller and never touches sibling jobs.
import os
import asyncio
import logging
from typing import Awaitable, Callable, Iterable

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database import Database, get_database
from telemetry import span

logger = logging.getLogger("boardflow.side-effects")

SIDE_EFFECT_CONCURRENCY = int(os.getenv("SIDE_EFFECT_CONCURRENCY", "8"))

Job = Callable[[AsyncSession], Awaitable[None]]


class SideEffectRunner:
    def __init__(self, session_maker: async_sessionmaker, concurrency: int = SIDE_EFFECT_CONCURRENCY):
        self.session_maker = session_maker
        self.concurrency = max(1, concurrency)

    @classmethod
    def for_database(cls, database: Database) -> "SideEffectRunner":
        # SQLite serialises writers; parallel jobs would only fight over the lock
        concurrency = 1 if database.is_sqlite else SIDE_EFFECT_CONCURRENCY
        return cls(database.session_maker, concurrency)

    async def run(self, label: str, job: Job) -> bool:
        """Run one job; returns False if it failed"""
        with span(f"side_effect.{label}"):
            async with self.session_maker() as session:
                try:
                    await job(session)
                    await session.commit()
                    return True
                except Exception:
                    await session.rollback()
                    logger.warning(f"Side effect '{label}' failed", exc_info=True)
                    return False

    async def run_all(self, label: str, jobs: Iterable[Job]) -> int:
        """Run independent jobs concurrently; returns how many succeeded"""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(job: Job) -> bool:
            async with semaphore:
                return await self.run(label, job)

        results = await asyncio.gather(*(_bounded(job) for job in jobs))
        return sum(1 for ok in results if ok)


def get_side_effect_runner(database: Database = Depends(get_database)) -> SideEffectRunner:
    return SideEffectRunner.for_database(database)
