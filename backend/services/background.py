"""Detached fire-and-forget tasks that must never affect the request path."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """
    Holds references to detached asyncio tasks until they finish.

    Failures are logged through the injected logger and swallowed. The
    request path calls submit() and never awaits the returned task.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self._tasks: set[asyncio.Task] = set()
        self._logger = log or logger

    def submit(
        self,
        factory: Callable[[], Awaitable[object]],
        *,
        name: str = "background",
    ) -> asyncio.Task:
        task = asyncio.create_task(self._run(factory, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, factory: Callable[[], Awaitable[object]], name: str) -> None:
        try:
            await factory()
        except asyncio.CancelledError:
            self._logger.debug("Background task %s cancelled", name)
            raise
        except Exception as e:
            self._logger.warning("Background task %s failed: %s", name, e)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for outstanding tasks (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
