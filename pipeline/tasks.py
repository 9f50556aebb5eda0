"""
Supervised fire-and-forget tasks.

The webhook acknowledges before processing finishes; the work runs here
so that it is tracked, its errors are logged, and shutdown can wait for it.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Owns in-flight background tasks for the process lifetime."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        name: Optional[str] = None,
    ) -> asyncio.Task:
        """
        Schedule func(*args) on the running loop without awaiting it.

        Must be called from inside the event loop (e.g. a request handler).
        """
        task = asyncio.create_task(self._guard(func, args, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, func: Callable[..., Awaitable[Any]], args: tuple, name: Optional[str]) -> Any:
        try:
            return await func(*args)
        except asyncio.CancelledError:
            logger.warning(f"Background task cancelled: {name or func.__name__}")
            raise
        except Exception as e:
            logger.error(
                f"Background task failed: {name or func.__name__}: {e}",
                exc_info=True,
            )
            return None

    async def drain(self, timeout: float = 10.0) -> None:
        """
        Wait for in-flight tasks; cancel whatever is still running at timeout.
        """
        if not self.pending:
            return

        logger.info(f"Waiting for {self.pending} background task(s)")
        in_flight = set(self._tasks)
        _, still_running = await asyncio.wait(in_flight, timeout=timeout)

        if still_running:
            logger.warning(f"Cancelling {len(still_running)} background task(s) after {timeout}s")
            for task in still_running:
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)
