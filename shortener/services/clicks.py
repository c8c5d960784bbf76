import asyncio
import logging
from typing import Set

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .. import crud
from ..database import AsyncSessionLocal
from ..observability import CLICK_RECORD_FAILURES

logger = logging.getLogger(__name__)


class ClickDispatcher:
    """Fire-and-forget click accounting.

    ``dispatch`` schedules the counter update on its own task with its own
    session and returns at once. Failures end up in the log and in
    ``click_record_failures_total``; they are never raised to the caller and
    never retried, so a click is counted at most once.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal):
        self.session_factory = session_factory
        # The event loop only keeps weak references to tasks
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, code: str) -> asyncio.Task:
        task = asyncio.create_task(self._record(code), name=f"record-click:{code}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self):
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _record(self, code: str):
        try:
            async with self.session_factory() as db:
                recorded = await crud.record_click(db, code)
        except Exception:
            CLICK_RECORD_FAILURES.inc()
            logger.exception(f"Error updating click count for {code}")
            return

        if not recorded:
            logger.warning(f"Click for {code} dropped: link no longer exists")


click_dispatcher = ClickDispatcher()
