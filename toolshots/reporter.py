"""JSON batch report output."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path

from toolshots.models.capture import BatchResult

logger = logging.getLogger(__name__)


def write_batch_report(batch: BatchResult, output_dir: Path) -> Path:
    """Write a machine-readable summary of a batch run and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"batch_{time.strftime('%Y%m%d_%H%M%S')}.json"

    report = batch.model_dump(mode="json")
    report["failed_targets"] = [f"{f.target}: {f.error}" for f in batch.failures]

    with open(output_path, "w") as f:
        json.dump(report, f, indent=2, default=str)
    logger.debug("Wrote batch report to %s", output_path)
    return output_path
