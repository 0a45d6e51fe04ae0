"""Exception taxonomy for the screenshot pipeline."""

from __future__ import annotations

from typing import Optional


class ScreenshotError(Exception):
    """Base class for every pipeline failure."""


class CaptureError(ScreenshotError):
    """The local browser could not produce captures (launch failure, crash)."""


class NavigationError(CaptureError):
    """DNS, connection or timeout failure while loading the target page."""


class CaptureEmptyError(ScreenshotError):
    """A screenshot came back with zero bytes. Affects one region only."""

    def __init__(self, region: str, message: Optional[str] = None):
        self.region = region
        super().__init__(message or f"Empty screenshot for region '{region}'")


class EncodeError(ScreenshotError):
    """The transcoder could not encode an image."""


class UploadError(ScreenshotError):
    """Object storage rejected an upload."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Upload failed for {path}: {message}")


class RecordUpdateError(ScreenshotError):
    """The owning tool record could not be updated with the new URLs."""


class FallbackExhaustedError(ScreenshotError):
    """Every render-service candidate failed."""

    def __init__(self, url: str, attempts: list[str]):
        self.url = url
        self.attempts = attempts
        detail = "; ".join(attempts) if attempts else "no candidates"
        super().__init__(f"All fallback renders failed for {url}: {detail}")


class StageTimeoutError(ScreenshotError):
    """A stage or the whole target exceeded its time budget."""
