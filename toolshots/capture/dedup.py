"""Duplicate detector: drops region captures that rendered the same pixels.

The fingerprint is a truncated MD5 of the raw bytes plus the byte length.
It is a cheap proxy aimed at pixel-identical viewport captures (short pages
where several offsets land on the same viewport), not a perceptual hash.
"""

from __future__ import annotations

import hashlib
import itertools
import logging
from dataclasses import dataclass, field
from typing import Optional

from toolshots.errors import CaptureEmptyError
from toolshots.models.capture import CapturedImage, DuplicateMatch, Region
from toolshots.models.config import DedupConfig

logger = logging.getLogger(__name__)


def fingerprint(data: bytes, prefix_length: int = 12) -> str:
    digest = hashlib.md5(data).hexdigest()[:prefix_length]
    return f"{digest}_{len(data)}"


def _split_fingerprint(fp: str) -> tuple[str, int]:
    digest, _, size = fp.rpartition("_")
    return digest, int(size or 0)


def fingerprint_similarity(
    fp1: str, fp2: str, hash_weight: float = 0.7, size_weight: float = 0.3,
) -> float:
    """Positional hash-character match blended with byte-length closeness."""
    if fp1 == fp2:
        return 1.0
    h1, s1 = _split_fingerprint(fp1)
    h2, s2 = _split_fingerprint(fp2)

    hash_match = sum(1 for a, b in zip(h1, h2) if a == b) / len(h1) if h1 else 0.0
    largest = max(s1, s2)
    size_similarity = 1.0 - abs(s1 - s2) / largest if largest else 1.0
    return hash_match * hash_weight + size_similarity * size_weight


@dataclass
class DedupResult:
    kept: list[CapturedImage] = field(default_factory=list)
    duplicates: list[DuplicateMatch] = field(default_factory=list)
    distinct: int = 0

    def has(self, region: Region) -> bool:
        return any(img.region == region for img in self.kept)

    @property
    def dropped(self) -> list[Region]:
        return [m.region for m in self.duplicates if not m.kept]


class DuplicateDetector:
    """Keeps the first capture in priority order and drops later near-copies."""

    def __init__(self, config: DedupConfig, required_regions: Optional[set[Region]] = None):
        self.config = config
        self.required_regions = required_regions if required_regions is not None else {Region.HERO}

    def make_image(self, region: Region, data: bytes | None) -> CapturedImage:
        """Wrap a raw buffer, computing its fingerprint up front."""
        if not data:
            raise CaptureEmptyError(region.value)
        return CapturedImage(
            region=region,
            data=data,
            fingerprint=fingerprint(data, self.config.hash_prefix_length),
        )

    def score(self, a: CapturedImage, b: CapturedImage) -> float:
        return fingerprint_similarity(
            a.fingerprint, b.fingerprint, self.config.hash_weight, self.config.size_weight,
        )

    def is_duplicate(self, a: CapturedImage, b: CapturedImage) -> bool:
        return self.score(a, b) > self.config.similarity_threshold

    def all_near_identical(self, images: list[CapturedImage]) -> bool:
        """True when at least two captures exist and every pair collides."""
        if len(images) < 2:
            return False
        return all(self.is_duplicate(a, b) for a, b in itertools.combinations(images, 2))

    def select(self, images: list[CapturedImage]) -> DedupResult:
        result = DedupResult()
        for image in sorted(images, key=lambda img: img.region.priority):
            best: Optional[tuple[float, CapturedImage]] = None
            for kept in result.kept:
                s = self.score(image, kept)
                if best is None or s > best[0]:
                    best = (s, kept)

            if best is None or best[0] <= self.config.similarity_threshold:
                result.kept.append(image)
                result.distinct += 1
                continue

            score, original = best
            required = image.region in self.required_regions
            result.duplicates.append(DuplicateMatch(
                region=image.region, duplicate_of=original.region,
                score=round(score, 4), kept=required,
            ))
            if required:
                logger.debug("%s duplicates %s (%.2f) but is required, keeping",
                             image.region.value, original.region.value, score)
                result.kept.append(image)
            else:
                logger.debug("%s duplicates %s (%.2f), dropping",
                             image.region.value, original.region.value, score)
        return result

    def needs_supplement(self, result: DedupResult) -> bool:
        return result.distinct < self.config.min_distinct_regions

    def supplement(self, result: DedupResult, fullpage: Optional[CapturedImage]) -> DedupResult:
        """Force a full-page capture into a thin result set."""
        if fullpage is None or result.has(Region.FULLPAGE):
            return result
        kept = sorted(result.kept + [fullpage], key=lambda img: img.region.priority)
        duplicates = [
            m.model_copy(update={"kept": True}) if m.region == Region.FULLPAGE else m
            for m in result.duplicates
        ]
        return DedupResult(kept=kept, duplicates=duplicates, distinct=result.distinct)
