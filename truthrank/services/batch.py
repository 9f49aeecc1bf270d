"""
Bounded concurrent execution of one page of per-user batch work.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, NamedTuple, Optional

from truthrank.config import Config

logger = logging.getLogger(__name__)


class UserOutcome(NamedTuple):
    user_id: str
    value: Any
    error: Optional[BaseException]


def describe_error(error: BaseException) -> str:
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


class PageRunner:
    """Runs a worker for each user of a page on a bounded pool with a page deadline."""

    def __init__(self, max_workers: Optional[int] = None, page_timeout: Optional[float] = None):
        self.max_workers = Config.BATCH_MAX_WORKERS if max_workers is None else max_workers
        self.page_timeout = Config.BATCH_PAGE_TIMEOUT_SECONDS if page_timeout is None else page_timeout
        if self.max_workers < 1 or self.page_timeout <= 0:
            raise ValueError("max_workers and page_timeout must be positive")

    async def run(self, user_ids: List[str], worker: Callable[[str], Awaitable[Any]]) -> List[UserOutcome]:
        """
        Run worker(user_id) for every user, at most max_workers at a time.

        Users still unfinished when the page deadline passes are cancelled and
        reported with a TimeoutError. Worker exceptions are captured per user.
        """
        if not user_ids:
            return []
        semaphore = asyncio.Semaphore(self.max_workers)

        async def guarded(user_id: str):
            async with semaphore:
                return await worker(user_id)

        tasks = [asyncio.create_task(guarded(user_id)) for user_id in user_ids]
        _, pending = await asyncio.wait(tasks, timeout=self.page_timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"{len(pending)} of {len(tasks)} users timed out after {self.page_timeout}s")
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes = []
        for user_id, task in zip(user_ids, tasks):
            if task in pending:
                error = asyncio.TimeoutError(f"page timed out after {self.page_timeout}s")
                outcomes.append(UserOutcome(user_id, None, error))
            elif task.exception() is not None:
                outcomes.append(UserOutcome(user_id, None, task.exception()))
            else:
                outcomes.append(UserOutcome(user_id, task.result(), None))
        return outcomes
