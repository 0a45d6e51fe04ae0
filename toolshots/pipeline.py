"""Per-target screenshot pipeline: capture → dedupe → transcode → upload."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from toolshots.capture.dedup import DuplicateDetector
from toolshots.capture.engine import CaptureEngine
from toolshots.capture.fallback import FallbackRenderer
from toolshots.errors import (
    CaptureError,
    CaptureEmptyError,
    FallbackExhaustedError,
    RecordUpdateError,
)
from toolshots.models.capture import CapturedImage, CaptureTarget, TargetResult, TargetState
from toolshots.storage.gateway import PersistenceGateway
from toolshots.transcode import Transcoder
from toolshots.url_utils import normalize_website_url

logger = logging.getLogger(__name__)


class ScreenshotPipeline:
    """Runs one target through the full state machine.

    Stages are strictly sequential for a target. Expected failures end in a
    FAILED result; unexpected exceptions propagate to the batch boundary.
    """

    def __init__(
        self,
        engine: Optional[CaptureEngine],
        fallback: Optional[FallbackRenderer],
        detector: DuplicateDetector,
        transcoder: Transcoder,
        gateway: PersistenceGateway,
    ):
        self.engine = engine
        self.fallback = fallback
        self.detector = detector
        self.transcoder = transcoder
        self.gateway = gateway

    async def process(self, target: CaptureTarget, result: Optional[TargetResult] = None) -> TargetResult:
        """Process a target. Pass `result` to let callers observe progress (e.g. on timeout)."""
        start = time.time()
        if result is None:
            result = TargetResult(tool_id=target.id, url=target.url)
        result.advance(TargetState.PENDING)
        try:
            return await self._process(target, result)
        finally:
            result.duration_seconds = round(time.time() - start, 2)

    async def _process(self, target: CaptureTarget, result: TargetResult) -> TargetResult:
        url = normalize_website_url(target.url)
        if not url:
            logger.error("[%s] Invalid website URL: %r", target.id, target.url)
            return result.fail("Invalid website URL")
        result.url = url

        images = await self._capture(target.id, url, result)
        if images is None:
            images = await self._fallback(target.id, url, result)
            if images is None:
                return result

        result.advance(TargetState.TRANSCODING)
        assets = [await asyncio.to_thread(self.transcoder.transcode, img) for img in images]

        result.advance(TargetState.UPLOADING)
        try:
            outcome = await self.gateway.persist(target.id, assets)
        except RecordUpdateError as e:
            logger.error("[%s] %s", target.id, e)
            return result.fail(str(e))

        result.region_errors.extend(outcome.errors)
        if not outcome.screenshot_set.urls:
            logger.error("[%s] All uploads failed for %s", target.id, url)
            return result.fail("All uploads failed: " + "; ".join(outcome.errors))

        result.urls = outcome.screenshot_set.urls
        result.regions = outcome.screenshot_set.regions
        result.partial = outcome.partial
        result.success = True
        result.advance(TargetState.COMPLETED)
        logger.info("[%s] Completed %s: %d screenshot(s) via %s%s",
                    target.id, url, len(result.urls), result.source,
                    " (partial)" if result.partial else "")
        return result

    async def _capture(self, tool_id: str, url: str, result: TargetResult) -> Optional[list[CapturedImage]]:
        if self.engine is None:
            return None
        result.advance(TargetState.CAPTURING)
        try:
            outcome = await self.engine.capture_regions(url)
        except CaptureError as e:
            logger.warning("[%s] Local capture failed for %s: %s", tool_id, url, e)
            result.region_errors.append(str(e))
            return None

        result.region_errors.extend(outcome.region_errors)
        if not outcome.images:
            logger.warning("[%s] Local capture of %s produced no images", tool_id, url)
            return None

        result.advance(TargetState.DEDUPING)
        result.duplicates = outcome.duplicates
        result.alternate_pass = outcome.alternate_pass
        result.source = "browser"
        return outcome.images

    async def _fallback(self, tool_id: str, url: str, result: TargetResult) -> Optional[list[CapturedImage]]:
        if self.fallback is None:
            reason = result.region_errors[-1] if result.region_errors else "Capture produced no images"
            return self._give_up(tool_id, result, f"Capture failed: {reason}")

        result.advance(TargetState.FALLBACK_RENDERING)
        try:
            rendered = await self.fallback.render(url)
            image = self.detector.make_image(rendered.region, rendered.data)
        except (FallbackExhaustedError, CaptureEmptyError) as e:
            return self._give_up(tool_id, result, str(e))

        result.source = "fallback"
        return [image]

    def _give_up(self, tool_id: str, result: TargetResult, reason: str) -> None:
        logger.error("[%s] Giving up on %s: %s", tool_id, result.url, reason)
        result.fail(reason)
        return None


async def process_with_budget(
    pipeline: ScreenshotPipeline,
    target: CaptureTarget,
    timeout: float,
    result: Optional[TargetResult] = None,
) -> TargetResult:
    """Run one target under its total time budget.

    On expiry the pipeline task is cancelled, which still tears down its
    browser, and the target ends FAILED with a timeout error.
    """
    if result is None:
        result = TargetResult(tool_id=target.id, url=target.url)
    try:
        return await asyncio.wait_for(pipeline.process(target, result), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("[%s] Timed out after %.1fs processing %s", target.id, timeout, target.url)
        return result.fail(f"timeout: exceeded {timeout:.1f}s")
