"""Capture engine: drives one Chromium page per target and returns region captures."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from toolshots.errors import CaptureEmptyError, CaptureError, NavigationError, StageTimeoutError
from toolshots.models.capture import CapturedImage, DuplicateMatch, Region
from toolshots.models.config import CaptureConfig
from toolshots.url_utils import short_url

from .browser import create_capture_context, launch_capture_browser
from .dedup import DuplicateDetector
from .sampler import (
    SCROLL_METRICS_SCRIPT,
    RegionSampler,
    SamplePlan,
    ScrollMetrics,
    parse_scroll_metrics,
)

logger = logging.getLogger(__name__)


@dataclass
class CaptureOutcome:
    images: list[CapturedImage] = field(default_factory=list)
    duplicates: list[DuplicateMatch] = field(default_factory=list)
    region_errors: list[str] = field(default_factory=list)
    max_scroll: int = 0
    alternate_pass: bool = False


class CaptureSession:
    """A navigated page. Only the owning task may touch it."""

    def __init__(self, page: Page, config: CaptureConfig):
        self.page = page
        self.config = config

    @property
    def viewport_height(self) -> int:
        viewport = self.page.viewport_size
        if viewport and viewport.get("height"):
            return int(viewport["height"])
        return self.config.viewport.height

    async def scroll_metrics(self) -> ScrollMetrics:
        return parse_scroll_metrics(await self.page.evaluate(SCROLL_METRICS_SCRIPT))

    async def scroll_to(self, y: int) -> None:
        await self.page.evaluate("(y) => window.scrollTo(0, y)", y)

    async def capture_viewport(self, region: Region, y: int) -> bytes:
        await self.scroll_to(y)
        await self.page.wait_for_timeout(self.config.region_settle_ms)
        return await self._screenshot(region)

    async def capture_full_page(self) -> bytes:
        await self.scroll_to(0)
        await self.page.wait_for_timeout(self.config.fullpage_settle_ms)
        return await self._screenshot(Region.FULLPAGE, full_page=True)

    async def _screenshot(self, region: Region, full_page: bool = False) -> bytes:
        try:
            return await self.page.screenshot(
                type="png", full_page=full_page, timeout=self.config.screenshot_timeout_ms,
            )
        except PlaywrightTimeoutError as e:
            raise StageTimeoutError(
                f"Screenshot of region '{region.value}' timed out after "
                f"{self.config.screenshot_timeout_ms}ms"
            ) from e


async def _close_quietly(resource, label: str) -> None:
    if resource is None:
        return
    try:
        await resource.close()
    except PlaywrightError as e:
        # A crashed browser refuses close(); the process is already gone.
        logger.debug("Ignoring error while closing %s: %s", label, e)


class CaptureEngine:
    """Owns browser lifecycle for one target at a time.

    Each call launches its own browser and context, so a crash on one
    target never affects the next one. The Playwright driver is the only
    thing shared across calls.
    """

    def __init__(
        self,
        config: CaptureConfig,
        launcher: Playwright,
        detector: DuplicateDetector,
        sampler: Optional[RegionSampler] = None,
    ):
        self.config = config
        self.launcher = launcher
        self.detector = detector
        self.sampler = sampler or RegionSampler(config)

    @asynccontextmanager
    async def session(self, url: str) -> AsyncIterator[CaptureSession]:
        """Launch browser → context → page, navigate, and always tear all three down."""
        browser = context = page = None
        try:
            try:
                browser = await launch_capture_browser(self.launcher, headless=self.config.headless)
                context = await create_capture_context(browser, self.config)
                page = await context.new_page()
            except PlaywrightError as e:
                raise CaptureError(f"Browser unavailable: {e}") from e

            page.set_default_timeout(self.config.screenshot_timeout_ms)
            await self._navigate(page, url)
            yield CaptureSession(page, self.config)
        finally:
            await _close_quietly(page, "page")
            await _close_quietly(context, "context")
            await _close_quietly(browser, "browser")

    async def _navigate(self, page: Page, url: str) -> None:
        logger.debug("Loading %s (timeout=%dms, wait_until=%s)",
                     url, self.config.navigation_timeout_ms, self.config.wait_until)
        try:
            await page.goto(
                url, wait_until=self.config.wait_until,
                timeout=self.config.navigation_timeout_ms,
            )
        except PlaywrightTimeoutError as e:
            raise NavigationError(
                f"Timed out loading {url} after {self.config.navigation_timeout_ms}ms"
            ) from e
        except PlaywrightError as e:
            raise NavigationError(f"Failed to load {url}: {e}") from e
        # Let above-the-fold JS (lazy images, cookie banners) render
        await page.wait_for_timeout(self.config.settle_delay_ms)

    async def capture_regions(self, url: str) -> CaptureOutcome:
        """Capture hero / features / pricing / fullpage with duplicate filtering."""
        async with self.session(url) as session:
            try:
                return await self._capture_all(session, url)
            except PlaywrightError as e:
                raise CaptureError(f"Browser failed while capturing {short_url(url)}: {e}") from e

    async def _capture_all(self, session: CaptureSession, url: str) -> CaptureOutcome:
        errors: list[str] = []
        metrics = await session.scroll_metrics()
        plan = self.sampler.plan(metrics, session.viewport_height)
        logger.debug("Scroll metrics for %s: height=%d client=%d max_scroll=%d offsets=%s",
                     short_url(url), metrics.scroll_height, metrics.client_height,
                     plan.max_scroll, {r.value: y for r, y in plan.offsets.items()})

        images = await self._capture_plan(session, plan, errors)

        fullpage: Optional[CapturedImage] = None
        if plan.capture_fullpage:
            fullpage = await self._capture_fullpage(session, errors)

        alternate_used = False
        # Only when every planned region was captured and all of them collide
        if len(images) == len(plan.specs) and self.detector.all_near_identical(images):
            alternate = self.sampler.alternate_plan(plan)
            if alternate is not None:
                logger.info("Viewport regions identical for %s, re-capturing at alternate offsets",
                            short_url(url))
                retaken = await self._capture_plan(session, alternate, errors)
                images = _merge_by_region(images, retaken)
                alternate_used = True

        candidates = images + ([fullpage] if fullpage else [])
        result = self.detector.select(candidates)

        if self.detector.needs_supplement(result) and not result.has(Region.FULLPAGE):
            if fullpage is None and not plan.capture_fullpage:
                fullpage = await self._capture_fullpage(session, errors)
            if fullpage is not None:
                logger.info("Only %d distinct region(s) for %s, adding full-page capture",
                            result.distinct, short_url(url))
            result = self.detector.supplement(result, fullpage)

        return CaptureOutcome(
            images=result.kept,
            duplicates=result.duplicates,
            region_errors=errors,
            max_scroll=plan.max_scroll,
            alternate_pass=alternate_used,
        )

    async def _capture_plan(
        self, session: CaptureSession, plan: SamplePlan, errors: list[str],
    ) -> list[CapturedImage]:
        images = []
        for spec in plan.specs:
            try:
                data = await session.capture_viewport(spec.name, plan.offsets[spec.name])
                images.append(self.detector.make_image(spec.name, data))
            except (CaptureEmptyError, StageTimeoutError) as e:
                logger.warning("%s", e)
                errors.append(str(e))
        return images

    async def _capture_fullpage(
        self, session: CaptureSession, errors: list[str],
    ) -> Optional[CapturedImage]:
        try:
            data = await session.capture_full_page()
            return self.detector.make_image(Region.FULLPAGE, data)
        except (CaptureEmptyError, StageTimeoutError) as e:
            logger.warning("%s", e)
            errors.append(str(e))
            return None


def _merge_by_region(
    primary: list[CapturedImage], retaken: list[CapturedImage],
) -> list[CapturedImage]:
    """Prefer re-captured images, keeping a primary one where the retake came back empty."""
    by_region = {img.region: img for img in primary}
    by_region.update({img.region: img for img in retaken})
    return sorted(by_region.values(), key=lambda img: img.region.priority)
