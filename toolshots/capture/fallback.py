"""Fallback renderer: fetches a screenshot from a third-party render service.

Used when the local browser is unavailable or cannot load the page. The
result is one raw image that flows through the same transcode and upload
path as a local capture.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from toolshots.errors import FallbackExhaustedError
from toolshots.models.capture import Region
from toolshots.models.config import FallbackConfig
from toolshots.url_utils import short_url

logger = logging.getLogger(__name__)


@dataclass
class RenderCandidate:
    url: str
    region: Region
    width: int


@dataclass
class RenderedImage:
    data: bytes
    region: Region
    candidate_url: str


class FallbackRenderer:
    """Tries render-service candidates in order until one returns an image."""

    def __init__(self, config: FallbackConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    def candidates(self, target_url: str, width: Optional[int] = None) -> list[RenderCandidate]:
        """Full-page render, standard render, then standard render at a reduced width."""
        width = width or self.config.width
        reduced = max(self.config.min_width, width - self.config.width_step)
        base = self.config.base_url.rstrip("/")
        options = "/".join(self.config.render_options)
        prefix = f"{options}/" if options else ""
        return [
            RenderCandidate(f"{base}/fullpage/{prefix}width/{width}/{target_url}", Region.FULLPAGE, width),
            RenderCandidate(f"{base}/{prefix}width/{width}/{target_url}", Region.HERO, width),
            RenderCandidate(f"{base}/{prefix}width/{reduced}/{target_url}", Region.HERO, reduced),
        ]

    async def render(self, target_url: str, width: Optional[int] = None) -> RenderedImage:
        attempts: list[str] = []
        if self._client is not None:
            return await self._try_candidates(self._client, target_url, width, attempts)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await self._try_candidates(client, target_url, width, attempts)

    async def _try_candidates(
        self, client: httpx.AsyncClient, target_url: str,
        width: Optional[int], attempts: list[str],
    ) -> RenderedImage:
        for candidate in self.candidates(target_url, width):
            logger.debug("Trying render service: %s", short_url(candidate.url))
            try:
                response = await client.get(candidate.url, timeout=self.config.timeout_seconds)
            except httpx.HTTPError as e:
                attempts.append(f"{candidate.region.value}@{candidate.width}: {type(e).__name__}: {e}")
                logger.warning("Render service request failed for %s: %s", short_url(target_url), e)
                continue

            if not response.is_success:
                attempts.append(f"{candidate.region.value}@{candidate.width}: HTTP {response.status_code}")
                logger.warning("Render service returned HTTP %d for %s",
                               response.status_code, short_url(target_url))
                continue

            data = response.content
            if not data:
                attempts.append(f"{candidate.region.value}@{candidate.width}: empty body")
                continue
            if len(data) > self.config.max_bytes:
                attempts.append(f"{candidate.region.value}@{candidate.width}: too large ({len(data)} bytes)")
                continue

            logger.info("Render service produced %d bytes for %s", len(data), short_url(target_url))
            return RenderedImage(data=data, region=candidate.region, candidate_url=candidate.url)

        raise FallbackExhaustedError(target_url, attempts)
