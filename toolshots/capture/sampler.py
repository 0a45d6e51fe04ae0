"""Region sampler: picks scroll offsets for hero / features / pricing captures.

Offsets are fractions of the scrollable distance rather than page-specific
selectors, so the same heuristic works on any landing page.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Optional

from toolshots.models.capture import Region, RegionSpec, region_specs
from toolshots.models.config import CaptureConfig

SCROLL_METRICS_SCRIPT = """
() => {
    const doc = document.documentElement;
    const body = document.body;
    const scrollHeight = Math.max(
        doc ? doc.scrollHeight : 0,
        body ? body.scrollHeight : 0,
        doc ? doc.offsetHeight : 0,
        body ? body.offsetHeight : 0
    );
    const clientHeight = (doc && doc.clientHeight) || window.innerHeight || 0;
    return { scrollHeight, clientHeight };
}
"""


@dataclass
class ScrollMetrics:
    scroll_height: int
    client_height: int


@dataclass
class SamplePlan:
    max_scroll: int
    offsets: dict[Region, int] = field(default_factory=dict)
    specs: list[RegionSpec] = field(default_factory=list)
    capture_fullpage: bool = True
    alternate: bool = False


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_max_scroll(metrics: ScrollMetrics, viewport_height: int) -> int:
    """Scrollable distance: document height minus the visible height."""
    visible = min(metrics.client_height or viewport_height, viewport_height)
    return max(0, metrics.scroll_height - visible)


def compute_offsets(max_scroll: int, specs: list[RegionSpec]) -> dict[Region, int]:
    return {spec.name: round_half_up(spec.offset_fraction * max_scroll) for spec in specs}


class RegionSampler:
    """Computes primary and alternate offset plans from live scroll metrics."""

    def __init__(self, config: CaptureConfig):
        self.primary_specs = region_specs(config.primary_fractions)
        self.alternate_specs = region_specs(config.alternate_fractions)
        self.capture_fullpage = config.capture_fullpage

    def plan(self, metrics: ScrollMetrics, viewport_height: int) -> SamplePlan:
        # A page that fits in one viewport yields identical offsets; the
        # duplicate detector deals with that, it is not an error here.
        max_scroll = compute_max_scroll(metrics, viewport_height)
        return SamplePlan(
            max_scroll=max_scroll,
            offsets=compute_offsets(max_scroll, self.primary_specs),
            specs=self.primary_specs,
            capture_fullpage=self.capture_fullpage,
        )

    def alternate_plan(self, plan: SamplePlan) -> Optional[SamplePlan]:
        """Offsets for the one-time re-capture, or None when it cannot help."""
        if plan.alternate or plan.max_scroll <= 0:
            return None
        return SamplePlan(
            max_scroll=plan.max_scroll,
            offsets=compute_offsets(plan.max_scroll, self.alternate_specs),
            specs=self.alternate_specs,
            capture_fullpage=False,
            alternate=True,
        )


def parse_scroll_metrics(raw: Any) -> ScrollMetrics:
    raw = raw or {}
    return ScrollMetrics(
        scroll_height=int(raw.get("scrollHeight") or 0),
        client_height=int(raw.get("clientHeight") or 0),
    )
