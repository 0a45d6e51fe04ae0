"""Batch runner: processes capture targets in fixed-size groups with time budgets."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from toolshots.models.capture import BatchFailure, BatchResult, CaptureTarget, TargetResult
from toolshots.models.config import BatchConfig
from toolshots.pipeline import ScreenshotPipeline, process_with_budget

logger = logging.getLogger(__name__)


class BatchRunner:
    """Runs every target independently; one target's failure never stops the batch.

    Targets inside a group share a worker pool bounded by `max_workers`
    (1 = strictly sequential). Each target gets its own browser context,
    so contexts are never shared between concurrent captures.
    """

    def __init__(
        self,
        config: BatchConfig,
        pipeline: ScreenshotPipeline,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.pipeline = pipeline
        self._sleep = sleep
        self._clock = clock

    async def run(self, targets: list[CaptureTarget], limit: Optional[int] = None) -> BatchResult:
        limit = limit if limit is not None else self.config.limit
        if limit is not None:
            targets = targets[:limit]

        started_at = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        start = self._clock()
        deadline = start + self.config.total_timeout_seconds if self.config.total_timeout_seconds else None
        semaphore = asyncio.Semaphore(self.config.max_workers)

        size = self.config.batch_size
        groups = [targets[i:i + size] for i in range(0, len(targets), size)]
        results: list[TargetResult] = []
        logger.info("Processing %d target(s) in %d batch(es) of up to %d",
                    len(targets), len(groups), size)

        for index, group in enumerate(groups, 1):
            logger.info("--- Batch %d/%d (%d targets) ---", index, len(groups), len(group))
            group_results = await asyncio.gather(
                *(self._run_one(target, semaphore, deadline) for target in group)
            )
            results.extend(group_results)

            if index < len(groups) and self.config.inter_batch_pause_seconds > 0:
                logger.debug("Pausing %.1fs before next batch", self.config.inter_batch_pause_seconds)
                await self._sleep(self.config.inter_batch_pause_seconds)

        return self._summarize(results, started_at, self._clock() - start)

    async def _run_one(
        self, target: CaptureTarget, semaphore: asyncio.Semaphore, deadline: Optional[float],
    ) -> TargetResult:
        async with semaphore:
            result = TargetResult(tool_id=target.id, url=target.url)
            timeout = self.config.target_timeout_seconds
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    logger.warning("[%s] Batch time budget exhausted, skipping %s", target.id, target.url)
                    return result.fail("timeout: batch time budget exhausted")
                timeout = min(timeout, remaining)

            logger.info("[%s] Processing %s %s", target.id, target.name or "", target.url)
            try:
                return await process_with_budget(self.pipeline, target, timeout, result)
            except Exception as e:
                logger.exception("[%s] Unexpected error processing %s", target.id, target.url)
                return result.fail(f"{type(e).__name__}: {e}")

    @staticmethod
    def _summarize(results: list[TargetResult], started_at: str, duration: float) -> BatchResult:
        batch = BatchResult(
            started_at=started_at,
            completed_at=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            total=len(results),
            succeeded=sum(1 for r in results if r.success),
            partial=sum(1 for r in results if r.success and r.partial),
            failed=sum(1 for r in results if not r.success),
            screenshots=sum(len(r.urls) for r in results),
            duration_seconds=round(duration, 2),
            results=results,
            failures=[
                BatchFailure(tool_id=r.tool_id, target=r.url, error=r.error or "unknown error")
                for r in results if not r.success
            ],
        )
        logger.info("Batch complete: %d succeeded (%d partial), %d failed, %d screenshots in %.1fs",
                    batch.succeeded, batch.partial, batch.failed, batch.screenshots, duration)
        return batch
