"""On-demand HTTP endpoint for screenshot capture."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from toolshots.batch import BatchRunner
from toolshots.models.capture import BatchFailure, BatchResult, CaptureTarget, TargetResult
from toolshots.models.config import PipelineConfig
from toolshots.pipeline import ScreenshotPipeline, process_with_budget
from toolshots.storage.records import ToolRepository
from toolshots.task_queue import QueueFullError, ScreenshotTaskQueue, TaskStatus
from toolshots.url_utils import normalize_website_url

logger = logging.getLogger(__name__)


class ScreenshotRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tool_id: Optional[str] = Field(default=None, alias="toolId")
    website_url: Optional[str] = Field(default=None, alias="websiteUrl")
    tool_ids: Optional[list[str]] = Field(default=None, alias="toolIds")


class ScreenshotService:
    """Everything the HTTP handlers need, owned by the app for its lifetime."""

    def __init__(self, config: PipelineConfig, pipeline: ScreenshotPipeline, repository: ToolRepository):
        self.config = config
        self.pipeline = pipeline
        self.repository = repository
        self.queue = ScreenshotTaskQueue(config.queue, self.capture_target)

    async def capture_target(self, target: CaptureTarget) -> TargetResult:
        return await process_with_budget(self.pipeline, target, self.config.batch.target_timeout_seconds)

    async def capture_one(self, tool_id: str, website_url: str) -> TargetResult:
        return await self.capture_target(CaptureTarget(id=tool_id, url=website_url))

    async def capture_many(self, tool_ids: list[str]) -> BatchResult:
        ids = tool_ids[: self.config.batch.max_ids_per_request]
        targets = await asyncio.to_thread(self.repository.targets_by_ids, ids)
        batch = await BatchRunner(self.config.batch, self.pipeline).run(targets)

        found = {t.id for t in targets}
        for tool_id in ids:
            if tool_id not in found:
                batch.results.append(TargetResult(tool_id=tool_id, url="").fail("Tool not found"))
                batch.failures.append(BatchFailure(tool_id=tool_id, target="", error="Tool not found"))
        batch.total = len(batch.results)
        batch.failed = sum(1 for r in batch.results if not r.success)
        return batch


def _result_errors(result: TargetResult) -> list[str]:
    errors = list(result.region_errors)
    if result.error and result.error not in errors:
        errors.append(result.error)
    return errors


def create_app(config: Optional[PipelineConfig] = None, service: Optional[ScreenshotService] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with AsyncExitStack() as stack:
            svc = service
            if svc is None:
                from toolshots.orchestrator import Orchestrator

                orchestrator = Orchestrator(config or PipelineConfig())
                pipeline = await stack.enter_async_context(orchestrator.pipeline_session())
                svc = ScreenshotService(orchestrator.config, pipeline, orchestrator.repository)
            app.state.service = svc
            svc.queue.start()
            try:
                yield
            finally:
                await svc.queue.stop()

    app = FastAPI(title="Tool Screenshot API", lifespan=lifespan)
    if service is not None:
        app.state.service = service

    allowed_origins = os.getenv("CORS_ORIGINS", "*").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    def _service(request: Request) -> ScreenshotService:
        return request.app.state.service

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/screenshot")
    async def capture(body: ScreenshotRequest, request: Request):
        svc = _service(request)

        if body.tool_ids is not None:
            if not body.tool_ids:
                raise HTTPException(status_code=400, detail="Missing or invalid toolIds")
            batch = await svc.capture_many(body.tool_ids)
            return {
                "success": batch.succeeded > 0,
                "screenshots": [url for r in batch.results for url in r.urls],
                "errors": [f"{r.tool_id}: {r.error}" for r in batch.results if not r.success],
                "results": [
                    {"toolId": r.tool_id, "success": r.success, "screenshots": r.urls, "error": r.error}
                    for r in batch.results
                ],
                "processed": batch.total,
            }

        if not body.tool_id or not body.website_url:
            raise HTTPException(status_code=400, detail="Missing required fields: toolId, websiteUrl")
        if not normalize_website_url(body.website_url):
            raise HTTPException(status_code=400, detail="Invalid URL")

        result = await svc.capture_one(body.tool_id, body.website_url)
        return {
            "success": result.success,
            "screenshots": result.urls,
            "errors": _result_errors(result),
            "partial": result.partial,
            "source": result.source,
        }

    @app.post("/api/screenshot/tasks")
    async def enqueue(body: ScreenshotRequest, request: Request):
        if not body.tool_id or not body.website_url:
            raise HTTPException(status_code=400, detail="Missing required fields: toolId, websiteUrl")
        try:
            task = _service(request).queue.enqueue(body.tool_id, body.website_url)
        except QueueFullError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {
            "success": True,
            "taskId": task.id,
            "message": "Screenshot task enqueued",
            "statusUrl": f"/api/screenshot/tasks/{task.id}",
        }

    @app.get("/api/screenshot/tasks/{task_id}")
    async def task_status(task_id: str, request: Request):
        task = _service(request).queue.get(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail=f"Task not found or expired: {task_id}")
        return {
            "id": task.id,
            "toolId": task.tool_id,
            "status": task.status.value,
            "screenshots": task.screenshots,
            "error": task.error,
            "createdAt": task.created_at,
            "updatedAt": task.updated_at,
            "isComplete": task.status == TaskStatus.COMPLETED,
            "isFailed": task.status == TaskStatus.FAILED,
            "isPending": task.status == TaskStatus.PENDING,
            "isProcessing": task.status == TaskStatus.PROCESSING,
        }

    @app.get("/api/screenshot/stats")
    async def stats(request: Request):
        return _service(request).queue.stats()

    return app
