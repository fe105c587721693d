"""
Unit-of-work helpers.

run_in_transaction wraps a coroutine in one database transaction: commit on
success, rollback and re-raise on any failure. run_with_row_lock does the
same but first takes SELECT ... FOR UPDATE on the matching rows, so two
requests touching the same event serialize instead of interleaving their
read-check-write sequences.

The wrapped coroutine receives the same session and must stay on it. Opening
a second session inside `work` and touching the locked row from there would
block on our own lock.
"""

from typing import Awaitable, Callable, Iterable, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from events_platform.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Work = Callable[[AsyncSession], Awaitable[T]]


async def run_in_transaction(db: AsyncSession, work: Work) -> T:
    try:
        result = await work(db)
        await db.commit()
        return result
    except Exception:
        await db.rollback()
        raise


async def run_with_row_lock(
    db: AsyncSession,
    model,
    criteria: Iterable,
    work: Work,
) -> T:
    criteria = list(criteria)

    async def locked(session: AsyncSession) -> T:
        await session.execute(
            select(model.id).where(*criteria).with_for_update()
        )
        logger.debug("row_lock_acquired", table=model.__tablename__)
        return await work(session)

    return await run_in_transaction(db, locked)
