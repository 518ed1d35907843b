"""
Single-writer queue for database mutations.

Every write job runs on one worker task, one at a time, inside its own
transaction. Jobs submitted while another job is running on the same task
(nested calls) reuse that job's session instead of queueing behind it.
"""

from __future__ import annotations

import asyncio
import logging
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

T = TypeVar("T")
WriteJob = Callable[[AsyncSession], Awaitable[Any]]

_active_session: ContextVar[Optional[AsyncSession]] = ContextVar("goal_engine_write_session", default=None)


def active_session() -> Optional[AsyncSession]:
    """Session of the write job running on the current task, if any"""
    return _active_session.get()


class WriterStoppedError(RuntimeError):
    pass


@dataclass
class _PendingWrite:
    job: WriteJob
    future: asyncio.Future = field(repr=False)


class WriteHandle:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        maxsize: int = 1000,
    ):
        self._session_factory = session_factory
        self._queue: asyncio.Queue[_PendingWrite] = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def size(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if not self.running:
            self._stop.clear()
            self._task = asyncio.create_task(self._run())
            logger.info("Write worker started")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        # Fail anything still queued so callers are not left waiting
        while not self._queue.empty():
            pending = self._queue.get_nowait()
            if not pending.future.done():
                pending.future.set_exception(WriterStoppedError("Write worker stopped"))
            self._queue.task_done()
        logger.info("Write worker stopped")

    async def exec(self, job: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """
        Run job(session) on the writer and return its result.

        The job's exception, if any, is re-raised here after its
        transaction has been rolled back.
        """
        session = _active_session.get()
        if session is not None:
            return await job(session)

        if not self.running:
            raise WriterStoppedError("Write worker is not running")

        future = asyncio.get_running_loop().create_future()
        await self._queue.put(_PendingWrite(job=job, future=future))
        return await future

    async def _run(self) -> None:
        while not self._stop.is_set():
            pending = await self._queue.get()
            try:
                if pending.future.cancelled():
                    continue
                result = await self._execute(pending.job)
            except asyncio.CancelledError:
                if not pending.future.done():
                    pending.future.set_exception(WriterStoppedError("Write worker stopped"))
                raise
            except Exception as exc:
                logger.debug("Write job failed: %s", exc)
                if not pending.future.done():
                    pending.future.set_exception(exc)
            else:
                if not pending.future.done():
                    pending.future.set_result(result)
            finally:
                self._queue.task_done()

    async def _execute(self, job: WriteJob) -> Any:
        async with self._session_factory() as session:
            async with session.begin():
                token = _active_session.set(session)
                try:
                    return await job(session)
                finally:
                    _active_session.reset(token)
