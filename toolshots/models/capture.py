"""Data structures flowing through the screenshot pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Region(str, Enum):
    HERO = "hero"
    FEATURES = "features"
    PRICING = "pricing"
    FULLPAGE = "fullpage"

    @property
    def priority(self) -> int:
        return REGION_ORDER.index(self)


# Fixed persistence / keep-priority order. Consumers index screenshot URLs positionally.
REGION_ORDER: list[Region] = [Region.HERO, Region.FEATURES, Region.PRICING, Region.FULLPAGE]

# Regions sampled at scroll offsets (fullpage is captured separately)
VIEWPORT_REGIONS: list[Region] = [Region.HERO, Region.FEATURES, Region.PRICING]


class RegionSpec(BaseModel):
    name: Region
    offset_fraction: float = Field(default=0.0, ge=0.0, le=1.0)
    required: bool = False


def region_specs(fractions: list[float]) -> list[RegionSpec]:
    """Build the viewport region specs for a set of hero/features/pricing fractions."""
    return [
        RegionSpec(name=region, offset_fraction=fraction, required=(region == Region.HERO))
        for region, fraction in zip(VIEWPORT_REGIONS, fractions)
    ]


class CaptureTarget(BaseModel):
    id: str
    url: str
    name: str = ""


@dataclass
class CapturedImage:
    """A raw bitmap for one region. Built by the duplicate detector so the
    fingerprint always exists before any comparison."""
    region: Region
    data: bytes
    fingerprint: str

    @property
    def byte_length(self) -> int:
        return len(self.data)


@dataclass
class TranscodedAsset:
    region: Region
    data: bytes
    extension: str
    content_type: str
    transcoded: bool = True

    def object_path(self, tool_id: str) -> str:
        return f"tools/{tool_id}/{self.region.value}.{self.extension}"


class DuplicateMatch(BaseModel):
    region: Region
    duplicate_of: Region
    score: float
    kept: bool = False  # required regions are kept even when duplicated


class PersistedScreenshotSet(BaseModel):
    tool_id: str
    urls: list[str] = Field(default_factory=list)
    regions: list[Region] = Field(default_factory=list)
    object_paths: list[str] = Field(default_factory=list)
    version: str = ""


class TargetState(str, Enum):
    PENDING = "pending"
    CAPTURING = "capturing"
    DEDUPING = "deduping"
    FALLBACK_RENDERING = "fallback_rendering"
    TRANSCODING = "transcoding"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


class TargetResult(BaseModel):
    tool_id: str
    url: str
    status: TargetState = TargetState.PENDING
    success: bool = False
    partial: bool = False
    source: str = ""  # browser, fallback
    urls: list[str] = Field(default_factory=list)
    regions: list[Region] = Field(default_factory=list)
    duplicates: list[DuplicateMatch] = Field(default_factory=list)
    alternate_pass: bool = False
    region_errors: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    states: list[TargetState] = Field(default_factory=list)
    duration_seconds: float = 0.0

    def advance(self, state: TargetState) -> None:
        self.status = state
        self.states.append(state)

    def fail(self, reason: str) -> "TargetResult":
        self.success = False
        self.error = reason
        self.advance(TargetState.FAILED)
        return self


class BatchFailure(BaseModel):
    tool_id: str
    target: str
    error: str


class BatchResult(BaseModel):
    started_at: str
    completed_at: str = ""
    total: int = 0
    succeeded: int = 0
    partial: int = 0
    failed: int = 0
    screenshots: int = 0
    duration_seconds: float = 0.0
    results: list[TargetResult] = Field(default_factory=list)
    failures: list[BatchFailure] = Field(default_factory=list)
