"""Tests for the render-service fallback."""

import httpx
import pytest

from toolshots.capture.fallback import FallbackRenderer
from toolshots.errors import FallbackExhaustedError
from toolshots.models.capture import Region
from toolshots.models.config import FallbackConfig

TARGET = "https://example.com"


def _renderer(handler, **overrides) -> FallbackRenderer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FallbackRenderer(FallbackConfig(**overrides), client=client)


class TestCandidates:
    def test_order_and_urls(self):
        renderer = FallbackRenderer(FallbackConfig())
        candidates = renderer.candidates(TARGET)

        assert [c.url for c in candidates] == [
            "https://image.thum.io/get/fullpage/noanimate/width/1200/https://example.com",
            "https://image.thum.io/get/noanimate/width/1200/https://example.com",
            "https://image.thum.io/get/noanimate/width/1000/https://example.com",
        ]
        assert [c.region for c in candidates] == [Region.FULLPAGE, Region.HERO, Region.HERO]

    def test_reduced_width_has_floor(self):
        renderer = FallbackRenderer(FallbackConfig())
        candidates = renderer.candidates(TARGET, width=900)
        assert candidates[-1].width == 800

    def test_without_render_options(self):
        renderer = FallbackRenderer(FallbackConfig(render_options=[], base_url="https://render.example/get/"))
        assert renderer.candidates(TARGET)[1].url == "https://render.example/get/width/1200/https://example.com"


class TestRender:
    @pytest.mark.asyncio
    async def test_first_candidate_success(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, content=b"\x89PNG-fullpage")

        image = await _renderer(handler).render(TARGET)

        assert image.region == Region.FULLPAGE
        assert image.data == b"\x89PNG-fullpage"
        assert len(seen) == 1
        assert "/fullpage/" in seen[0]

    @pytest.mark.asyncio
    async def test_falls_through_to_next_candidate(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            if "/fullpage/" in str(request.url):
                return httpx.Response(502)
            return httpx.Response(200, content=b"standard-render")

        image = await _renderer(handler).render(TARGET)

        assert image.region == Region.HERO
        assert image.data == b"standard-render"
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_network_error_moves_on(self):
        def handler(request):
            if "/width/1000/" not in str(request.url):
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, content=b"reduced-width")

        image = await _renderer(handler).render(TARGET)
        assert image.data == b"reduced-width"
        assert "/width/1000/" in image.candidate_url

    @pytest.mark.asyncio
    async def test_empty_body_skipped(self):
        def handler(request):
            if "/fullpage/" in str(request.url):
                return httpx.Response(200, content=b"")
            return httpx.Response(200, content=b"second")

        image = await _renderer(handler).render(TARGET)
        assert image.data == b"second"

    @pytest.mark.asyncio
    async def test_oversized_body_skipped(self):
        def handler(request):
            if "/fullpage/" in str(request.url):
                return httpx.Response(200, content=b"x" * 2048)
            return httpx.Response(200, content=b"small")

        image = await _renderer(handler, max_bytes=1024).render(TARGET)
        assert image.data == b"small"

    @pytest.mark.asyncio
    async def test_all_candidates_fail(self):
        def handler(request):
            return httpx.Response(500)

        with pytest.raises(FallbackExhaustedError) as exc:
            await _renderer(handler).render(TARGET)

        assert exc.value.url == TARGET
        assert len(exc.value.attempts) == 3
        assert all("HTTP 500" in a for a in exc.value.attempts)
