"""Pipeline orchestrator: wires stores, browser driver and runner for each entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from playwright.async_api import Playwright, async_playwright

from toolshots.batch import BatchRunner
from toolshots.capture.dedup import DuplicateDetector
from toolshots.capture.engine import CaptureEngine
from toolshots.capture.fallback import FallbackRenderer
from toolshots.models.capture import BatchResult, CaptureTarget, TargetResult
from toolshots.models.config import PipelineConfig
from toolshots.pipeline import ScreenshotPipeline, process_with_budget
from toolshots.reporter import write_batch_report
from toolshots.storage.gateway import PersistenceGateway
from toolshots.storage.records import ToolRepository
from toolshots.storage.supabase_store import SupabaseStore
from toolshots.transcode import Transcoder

logger = logging.getLogger(__name__)


class Orchestrator:
    """Builds the screenshot pipeline and runs batch, by-id and single-target jobs."""

    def __init__(self, config: PipelineConfig, store: Optional[SupabaseStore] = None):
        self.config = config
        self.store = store if store is not None else SupabaseStore.from_env()
        self.repository = ToolRepository(self.store, config.storage)
        self.detector = DuplicateDetector(config.dedup)
        self.transcoder = Transcoder(config.transcode)
        self.gateway = PersistenceGateway(self.store, self.repository, config.storage)
        self.fallback = FallbackRenderer(config.fallback) if config.fallback.enabled else None

    def build_pipeline(self, launcher: Optional[Playwright]) -> ScreenshotPipeline:
        engine = None
        if launcher is not None:
            engine = CaptureEngine(self.config.capture, launcher, self.detector)
        return ScreenshotPipeline(engine, self.fallback, self.detector, self.transcoder, self.gateway)

    @asynccontextmanager
    async def pipeline_session(self) -> AsyncIterator[ScreenshotPipeline]:
        """Keep the Playwright driver running for the lifetime of the block."""
        async with async_playwright() as p:
            yield self.build_pipeline(p)

    # ── Batch ──

    async def process_targets(self, targets: list[CaptureTarget], limit: Optional[int] = None) -> BatchResult:
        async with self.pipeline_session() as pipeline:
            runner = BatchRunner(self.config.batch, pipeline)
            return await runner.run(targets, limit)

    async def process_published(self, limit: Optional[int] = None) -> BatchResult:
        targets = await asyncio.to_thread(self.repository.published_targets)
        logger.info("=== Found %d published tool(s) ===", len(targets))
        return await self.process_targets(targets, limit)

    def run_batch(self, limit: Optional[int] = None) -> tuple[BatchResult, Path]:
        """Process every published tool (up to `limit`) and write a JSON report."""
        batch = asyncio.run(self.process_published(limit))
        report_path = write_batch_report(batch, Path(self.config.report_output_dir))
        return batch, report_path

    # ── Single target ──

    def resolve_target(self, tool_id: Optional[str] = None, url: Optional[str] = None) -> CaptureTarget:
        """Pick the target for a debug run: explicit id/url, a stored tool, or the newest one."""
        if tool_id and url:
            return CaptureTarget(id=tool_id, url=url)
        if tool_id:
            target = self.repository.get_target(tool_id)
            if target is None:
                raise LookupError(f"Tool not found: {tool_id}")
            return target
        if url:
            raise ValueError("A tool id is required to store screenshots for a URL")
        targets = self.repository.published_targets(limit=1)
        if not targets:
            raise LookupError("No published tools found")
        return targets[0]

    async def process_single(self, target: CaptureTarget) -> TargetResult:
        async with self.pipeline_session() as pipeline:
            return await process_with_budget(pipeline, target, self.config.batch.target_timeout_seconds)

    def run_single(self, tool_id: Optional[str] = None, url: Optional[str] = None) -> TargetResult:
        target = self.resolve_target(tool_id, url)
        logger.info("=== Single-target run for %s (%s) ===", target.id, target.url)
        return asyncio.run(self.process_single(target))
