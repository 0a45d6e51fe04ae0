"""Pytest configuration and shared fixtures."""

import io
from typing import Any, Callable, Optional

import pytest
from PIL import Image

from toolshots.errors import UploadError
from toolshots.models.capture import CaptureTarget
from toolshots.models.config import (
    BatchConfig,
    CaptureConfig,
    DedupConfig,
    PipelineConfig,
    StorageConfig,
)


# ============================================================================
# Image helpers
# ============================================================================


def make_png(color: tuple[int, int, int] = (200, 30, 30), size: tuple[int, int] = (64, 48)) -> bytes:
    """Render a solid-colour PNG with Pillow."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_factory() -> Callable[..., bytes]:
    return make_png


# ============================================================================
# Fake collaborators
# ============================================================================


class FakePage:
    """Minimal stand-in for a Playwright page.

    `render(y)` decides the bytes returned for a viewport screenshot at scroll
    offset y; `full` is returned for full-page screenshots.
    """

    def __init__(
        self,
        scroll_height: int = 3000,
        client_height: int = 800,
        render: Optional[Callable[[int], bytes]] = None,
        full: bytes = b"FULLPAGE-BYTES",
        goto_error: Optional[BaseException] = None,
        screenshot_error: Optional[BaseException] = None,
    ):
        self.viewport_size = {"width": 1200, "height": 800}
        self.scroll_height = scroll_height
        self.client_height = client_height
        self.render = render or (lambda y: f"viewport@{y}".encode())
        self.full = full
        self.goto_error = goto_error
        self.screenshot_error = screenshot_error
        self.y = 0
        self.goto_calls: list[dict] = []
        self.waits: list[int] = []
        self.shots: list[Any] = []  # scroll offsets, or "full"
        self.closed = False
        self.default_timeout = None

    def set_default_timeout(self, ms: int) -> None:
        self.default_timeout = ms

    async def goto(self, url: str, wait_until: str = "load", timeout: int = 0):
        self.goto_calls.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        if self.goto_error is not None:
            raise self.goto_error

    async def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)

    async def evaluate(self, script: str, arg: Any = None):
        if arg is None:
            return {"scrollHeight": self.scroll_height, "clientHeight": self.client_height}
        self.y = arg
        return None

    async def screenshot(self, type: str = "png", full_page: bool = False, timeout: int = 0) -> bytes:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        if full_page:
            self.shots.append("full")
            return self.full
        self.shots.append(self.y)
        return self.render(self.y)

    async def close(self) -> None:
        self.closed = True

    @property
    def viewport_shots(self) -> list[int]:
        return [s for s in self.shots if s != "full"]


class FakeStore:
    """In-memory object + relational store."""

    def __init__(
        self,
        rows: Optional[list[dict]] = None,
        fail_paths: tuple[str, ...] = (),
        bucket_exists: bool = True,
        fail_update: bool = False,
    ):
        self.rows = rows or []
        self.fail_paths = set(fail_paths)
        self._bucket_exists = bucket_exists
        self.fail_update = fail_update
        self.objects: dict[tuple[str, str], bytes] = {}
        self.uploads: list[dict] = []
        self.updates: list[dict] = []
        self.created_buckets: list[dict] = []
        self.selects: list[dict] = []

    def upload(self, bucket, path, data, *, upsert, content_type, cache_control):
        if path in self.fail_paths:
            raise UploadError(path, "simulated storage failure")
        self.uploads.append({
            "bucket": bucket, "path": path, "upsert": upsert,
            "content_type": content_type, "cache_control": cache_control, "size": len(data),
        })
        self.objects[(bucket, path)] = data

    def get_public_url(self, bucket, path):
        return f"https://cdn.example.com/storage/v1/object/public/{bucket}/{path}"

    def bucket_exists(self, bucket):
        return self._bucket_exists

    def create_bucket(self, bucket, *, public, file_size_limit, allowed_mime_types=None):
        self.created_buckets.append({"bucket": bucket, "public": public, "file_size_limit": file_size_limit})
        self._bucket_exists = True

    def select(self, table, columns, filters=None, *, order_by=None, descending=True, limit=None):
        self.selects.append({"table": table, "columns": columns, "filters": filters,
                             "order_by": order_by, "limit": limit})
        rows = self.rows
        for column, value in (filters or {}).items():
            if isinstance(value, list):
                rows = [r for r in rows if r.get(column) in value]
            else:
                rows = [r for r in rows if r.get(column) == value]
        return rows[:limit] if limit is not None else list(rows)

    def update(self, table, filters, fields):
        if self.fail_update:
            raise RuntimeError("simulated database failure")
        self.updates.append({"table": table, "filters": filters, "fields": fields})
        return []


@pytest.fixture
def page_factory() -> type[FakePage]:
    return FakePage


@pytest.fixture
def store_factory() -> type[FakeStore]:
    return FakeStore


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


# ============================================================================
# Configuration fixtures
# ============================================================================


@pytest.fixture
def capture_config() -> CaptureConfig:
    return CaptureConfig()


@pytest.fixture
def dedup_config() -> DedupConfig:
    return DedupConfig()


@pytest.fixture
def storage_config() -> StorageConfig:
    return StorageConfig()


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(
        batch=BatchConfig(batch_size=5, inter_batch_pause_seconds=0, target_timeout_seconds=30),
    )


@pytest.fixture
def target() -> CaptureTarget:
    return CaptureTarget(id="tool-1", url="https://example.com", name="Example")
