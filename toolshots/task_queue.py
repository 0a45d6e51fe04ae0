"""On-demand screenshot task queue.

A bounded asyncio queue drained by one long-lived worker. Task records are
owned by the queue object and expire after a TTL.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from enum import Enum
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, Field

from toolshots.models.capture import CaptureTarget, TargetResult
from toolshots.models.config import QueueConfig

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ScreenshotTask(BaseModel):
    id: str
    tool_id: str
    website_url: str
    status: TaskStatus = TaskStatus.PENDING
    screenshots: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    created_at: float
    updated_at: float


class QueueFullError(Exception):
    pass


TaskHandler = Callable[[CaptureTarget], Awaitable[TargetResult]]


class ScreenshotTaskQueue:
    def __init__(
        self,
        config: QueueConfig,
        handler: TaskHandler,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.handler = handler
        self._clock = clock
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=config.max_size)
        self._tasks: dict[str, ScreenshotTask] = {}
        self._worker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._run(), name="screenshot-task-worker")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def join(self) -> None:
        """Wait until every queued task has been processed."""
        await self._queue.join()

    def enqueue(self, tool_id: str, website_url: str) -> ScreenshotTask:
        self._expire()
        now = self._clock()
        task = ScreenshotTask(
            id=f"screenshot_{int(now * 1000)}_{uuid.uuid4().hex[:7]}",
            tool_id=tool_id,
            website_url=website_url,
            created_at=now,
            updated_at=now,
        )
        try:
            self._queue.put_nowait(task.id)
        except asyncio.QueueFull:
            raise QueueFullError(f"Screenshot queue is full ({self.config.max_size} tasks)")
        self._tasks[task.id] = task
        logger.info("Enqueued screenshot task %s for tool %s", task.id, tool_id)
        return task

    def get(self, task_id: str) -> Optional[ScreenshotTask]:
        self._expire()
        return self._tasks.get(task_id)

    def stats(self) -> dict[str, int]:
        tasks = list(self._tasks.values())
        counts = {status.value: sum(1 for t in tasks if t.status == status) for status in TaskStatus}
        return {"total": len(tasks), "queued": self._queue.qsize(), **counts}

    def _expire(self) -> None:
        cutoff = self._clock() - self.config.task_ttl_seconds
        expired = [
            task_id for task_id, task in self._tasks.items()
            if task.created_at < cutoff and task.status != TaskStatus.PROCESSING
        ]
        for task_id in expired:
            del self._tasks[task_id]
        if expired:
            logger.debug("Expired %d screenshot task(s)", len(expired))

    async def _run(self) -> None:
        while True:
            task_id = await self._queue.get()
            try:
                await self._process(task_id)
            finally:
                self._queue.task_done()

    async def _process(self, task_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is None:
            logger.debug("Task %s expired before processing", task_id)
            return

        task.status = TaskStatus.PROCESSING
        task.updated_at = self._clock()
        try:
            result = await self.handler(CaptureTarget(id=task.tool_id, url=task.website_url))
        except Exception as e:
            # Keep the worker alive for the remaining tasks
            logger.exception("Screenshot task %s crashed", task_id)
            task.status = TaskStatus.FAILED
            task.error = f"{type(e).__name__}: {e}"
        else:
            task.screenshots = result.urls
            task.status = TaskStatus.COMPLETED if result.success else TaskStatus.FAILED
            task.error = result.error
        finally:
            task.updated_at = self._clock()
