"""Configuration models for the screenshot pipeline."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


class ViewportConfig(BaseModel):
    width: int = 1200
    height: int = 800


class CaptureConfig(BaseModel):
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    user_agent: str = DEFAULT_USER_AGENT
    headless: bool = True

    # Navigation
    navigation_timeout_ms: int = 30_000
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "domcontentloaded"
    settle_delay_ms: int = 1200

    # Per-region capture
    region_settle_ms: int = 600
    fullpage_settle_ms: int = 400
    screenshot_timeout_ms: int = 15_000

    # Scroll fractions for hero / features / pricing
    primary_fractions: list[float] = Field(default_factory=lambda: [0.0, 0.35, 0.70])
    alternate_fractions: list[float] = Field(default_factory=lambda: [0.20, 0.50, 0.85])
    capture_fullpage: bool = True

    @field_validator("primary_fractions", "alternate_fractions")
    @classmethod
    def check_fractions(cls, v: list[float]) -> list[float]:
        if len(v) != 3:
            raise ValueError("exactly three scroll fractions are required (hero, features, pricing)")
        for f in v:
            if not 0.0 <= f <= 1.0:
                raise ValueError(f"scroll fraction {f} is outside [0, 1]")
        return v


class DedupConfig(BaseModel):
    # Heuristic defaults; not derived from any measurement.
    similarity_threshold: float = 0.9
    hash_weight: float = 0.7
    size_weight: float = 0.3
    hash_prefix_length: int = 12
    min_distinct_regions: int = 2

    @model_validator(mode="after")
    def check_weights(self) -> "DedupConfig":
        if abs(self.hash_weight + self.size_weight - 1.0) > 1e-6:
            raise ValueError("hash_weight and size_weight must sum to 1.0")
        return self


class FallbackConfig(BaseModel):
    enabled: bool = True
    base_url: str = "https://image.thum.io/get"
    render_options: list[str] = Field(default_factory=lambda: ["noanimate"])
    width: int = 1200
    width_step: int = 200
    min_width: int = 800
    timeout_seconds: float = 10.0
    max_bytes: int = int(9.5 * 1024 * 1024)


class TranscodeConfig(BaseModel):
    format: Literal["WEBP", "JPEG", "PNG"] = "WEBP"
    quality: int = Field(default=85, ge=1, le=100)
    # WebP cannot encode images larger than 16383px on either side
    max_dimension: int = 16383


class StorageConfig(BaseModel):
    bucket: str = "tool-screenshots"
    table: str = "tools"
    id_column: str = "id"
    url_column: str = "website_url"
    screenshots_column: str = "screenshots"
    status_column: str = "status"
    published_status: str = "published"
    order_column: str = "date_added"
    cache_control_seconds: int = 2_592_000  # 30 days
    bucket_file_size_limit: int = 10 * 1024 * 1024
    allowed_mime_types: list[str] = Field(
        default_factory=lambda: ["image/jpeg", "image/jpg", "image/png", "image/webp"]
    )


class BatchConfig(BaseModel):
    batch_size: int = Field(default=5, ge=1)
    inter_batch_pause_seconds: float = 2.0
    target_timeout_seconds: float = 120.0
    total_timeout_seconds: Optional[float] = None
    max_workers: int = Field(default=1, ge=1, le=5)
    limit: Optional[int] = None
    max_ids_per_request: int = 10


class QueueConfig(BaseModel):
    max_size: int = 100
    task_ttl_seconds: float = 30 * 60


class PipelineConfig(BaseModel):
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    transcode: TranscodeConfig = Field(default_factory=TranscodeConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)

    # Reporting
    report_output_dir: str = "./screenshot-reports"

    @classmethod
    def load(cls, path: str | Path) -> "PipelineConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    @classmethod
    def load_or_default(cls, path: str | Path | None) -> "PipelineConfig":
        """Load config if the file exists, otherwise fall back to defaults."""
        if path is not None and Path(path).exists():
            return cls.load(path)
        return cls()

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)


class SupabaseCredentials(BaseModel):
    url: str
    service_key: str

    @classmethod
    def from_env(cls) -> "SupabaseCredentials":
        url = os.environ.get("SUPABASE_URL") or os.environ.get("VITE_SUPABASE_URL") or ""
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or os.environ.get("SUPABASE_KEY") or ""
        if not url or not key:
            raise EnvironmentError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY environment variables must be set. "
                "Put them in .env.local or export them before running."
            )
        return cls(url=url, service_key=key)
