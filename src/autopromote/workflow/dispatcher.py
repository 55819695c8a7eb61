"""Background dispatch of push events to the workflow runner.

Each accepted delivery runs as its own asyncio task so the webhook can be
acknowledged immediately. A semaphore bounds how many plans run at once;
deliveries beyond the bound wait for a slot. Plans share no mutable state,
so no other coordination is needed.
"""

import asyncio
import logging
from typing import Optional, Set

from src.autopromote.webhook.models import PushEvent
from src.autopromote.workflow.models import PlanResult
from src.autopromote.workflow.runner import WorkflowRunner

logger = logging.getLogger(__name__)


class PlanDispatcher:
    """Runs WorkflowRunner.handle in bounded background tasks.

    Attributes:
        runner: The runner that handles each event.
        max_concurrent: Maximum number of plans running at the same time.
    """

    def __init__(self, runner: WorkflowRunner, max_concurrent: int = 8):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.runner = runner
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        """Number of dispatched events that have not finished."""
        return len(self._tasks)

    def dispatch(self, event: PushEvent) -> "asyncio.Task[Optional[PlanResult]]":
        """Schedule ``event`` for handling and return its task."""
        task = asyncio.create_task(self._run(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, event: PushEvent) -> Optional[PlanResult]:
        async with self._semaphore:
            try:
                return await self.runner.handle(event)
            except Exception:
                logger.exception(
                    "Unhandled error processing push event",
                    extra={"event_id": event.event_id, "delivery_id": event.delivery_id},
                )
                return None

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight plans to finish.

        Args:
            timeout: Seconds to wait before giving up; None waits forever.
        """
        if not self._tasks:
            return

        logger.info("Waiting for %d in-flight plan(s)", len(self._tasks))
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(
                "%d plan(s) still running after %.1fs",
                len(pending),
                timeout,
            )
