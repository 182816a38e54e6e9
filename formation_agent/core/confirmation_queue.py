"""Strictly sequential queue for confirmation prompts."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from formation_agent.utils.error_handling import describe_error

logger = logging.getLogger(__name__)


class ConfirmationQueue:
    """Runs queued confirmation flows one at a time.

    The next flow is only started after the previous one has fully resolved,
    so at most one prompt is outstanding per page.
    """

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.running = False
        self.active: Optional[str] = None
        self._processor_task: Optional[asyncio.Task] = None

    async def add_task(self, task_func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> None:
        """
        Add a confirmation flow to the queue.

        Args:
            task_func: Coroutine function running the flow
            *args: Positional arguments for the function
            **kwargs: Keyword arguments for the function
        """
        await self.queue.put((task_func, args, kwargs))
        logger.debug(f"Confirmation queued: {task_func.__name__} ({self.queue.qsize()} waiting)")

        if not self.running:
            self.start_processor()

    def start_processor(self) -> None:
        """Start the queue processor task."""
        if self._processor_task is None or self._processor_task.done():
            self.running = True
            self._processor_task = asyncio.create_task(self.process_queue())
            logger.debug("Confirmation queue processor started")

    async def process_queue(self) -> None:
        """Process queued flows in order, each to completion."""
        try:
            while not self.queue.empty():
                task_func, args, kwargs = await self.queue.get()
                self.active = task_func.__name__
                try:
                    await task_func(*args, **kwargs)
                except asyncio.CancelledError:
                    self.queue.task_done()
                    raise
                except Exception as e:
                    logger.error(f"Error in confirmation flow {task_func.__name__}: {describe_error(e)}")
                self.active = None
                self.queue.task_done()
        finally:
            self.running = False
            self.active = None
            logger.debug("Confirmation queue processor finished")

    async def wait_until_processed(self) -> None:
        """Wait until all queued flows have been processed."""
        await self.queue.join()

    def pending(self) -> int:
        return self.queue.qsize()

    async def stop(self) -> None:
        """Cancel the running flow and drop everything still queued."""
        while not self.queue.empty():
            self.queue.get_nowait()
            self.queue.task_done()
        if self._processor_task is not None and not self._processor_task.done():
            self._processor_task.cancel()
            try:
                await self._processor_task
            except asyncio.CancelledError:
                pass
        self.running = False
