"""Browser launch helpers: isolated Chromium contexts for screenshot capture."""

from __future__ import annotations

from playwright.async_api import Browser, BrowserContext, Playwright

from toolshots.models.config import CaptureConfig

_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]

# Some sites serve a blank shell or a bot wall to obvious headless browsers.
_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => false });

Object.defineProperty(navigator, 'languages', {
    get: () => ['en-US', 'en'],
});

if (!window.chrome) {
    window.chrome = {};
}
if (!window.chrome.runtime) {
    window.chrome.runtime = {};
}
"""


async def launch_capture_browser(playwright: Playwright, headless: bool = True) -> Browser:
    """Launch a fresh Chromium process for one target."""
    return await playwright.chromium.launch(headless=headless, args=_LAUNCH_ARGS)


async def create_capture_context(browser: Browser, config: CaptureConfig) -> BrowserContext:
    """Create an isolated context (own cookie/storage jar) with a fixed viewport and user agent."""
    context = await browser.new_context(
        viewport={"width": config.viewport.width, "height": config.viewport.height},
        user_agent=config.user_agent,
        locale="en-US",
        extra_http_headers={"Accept-Language": "en-US,en;q=0.9"},
    )
    await context.add_init_script(_INIT_SCRIPT)
    return context
