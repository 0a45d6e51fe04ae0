"""Persistence gateway: uploads transcoded assets and records their public URLs."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from toolshots.errors import UploadError
from toolshots.models.capture import PersistedScreenshotSet, Region, TranscodedAsset
from toolshots.models.config import StorageConfig

from .records import ToolRepository
from .supabase_store import ObjectStore

logger = logging.getLogger(__name__)


def with_version(url: str, version: str) -> str:
    """Append a cache-busting token so CDNs serve the re-processed image."""
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}v={version}"


@dataclass
class PersistOutcome:
    screenshot_set: PersistedScreenshotSet
    errors: list[str] = field(default_factory=list)
    failed_regions: list[Region] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.screenshot_set.urls) and bool(self.failed_regions)


class PersistenceGateway:
    """Upserts assets under `tools/{tool_id}/{region}.{ext}` and updates the tool row."""

    def __init__(
        self,
        objects: ObjectStore,
        records: ToolRepository,
        config: StorageConfig,
        clock: Callable[[], float] = time.time,
    ):
        self.objects = objects
        self.records = records
        self.config = config
        self.clock = clock
        self._bucket_ready = False
        self._bucket_lock = asyncio.Lock()

    async def ensure_bucket(self) -> None:
        """Create the public bucket on first use if it does not exist."""
        async with self._bucket_lock:
            if self._bucket_ready:
                return
            bucket = self.config.bucket
            exists = await asyncio.to_thread(self.objects.bucket_exists, bucket)
            if not exists:
                logger.info("Storage bucket %s missing, creating it", bucket)
                try:
                    await asyncio.to_thread(
                        self.objects.create_bucket, bucket,
                        public=True,
                        file_size_limit=self.config.bucket_file_size_limit,
                        allowed_mime_types=self.config.allowed_mime_types,
                    )
                except Exception as e:
                    # Uploads will report the real problem if the bucket is truly unusable
                    logger.warning("Could not create bucket %s: %s", bucket, e)
            self._bucket_ready = True

    async def persist(self, tool_id: str, assets: list[TranscodedAsset]) -> PersistOutcome:
        """Upload each asset, then write the successful URLs in region order.

        Upload failures are per region; whatever succeeded is still written.
        Raises RecordUpdateError if the final row update fails.
        """
        await self.ensure_bucket()
        version = str(int(self.clock() * 1000))
        outcome = PersistOutcome(PersistedScreenshotSet(tool_id=tool_id, version=version))
        shots = outcome.screenshot_set

        for asset in sorted(assets, key=lambda a: a.region.priority):
            path = asset.object_path(tool_id)
            try:
                await asyncio.to_thread(
                    self.objects.upload, self.config.bucket, path, asset.data,
                    upsert=True,
                    content_type=asset.content_type,
                    cache_control=self.config.cache_control_seconds,
                )
                public_url = await self._public_url(path)
            except UploadError as e:
                logger.warning("[%s] %s", tool_id, e)
                outcome.errors.append(str(e))
                outcome.failed_regions.append(asset.region)
                continue

            shots.urls.append(with_version(public_url, version))
            shots.regions.append(asset.region)
            shots.object_paths.append(path)
            logger.debug("[%s] Uploaded %s (%.1f KB)", tool_id, path, len(asset.data) / 1024)

        if shots.urls:
            await asyncio.to_thread(self.records.update_screenshots, tool_id, shots.urls)
            logger.info("[%s] Saved %d screenshot URL(s)", tool_id, len(shots.urls))
        return outcome

    async def _public_url(self, path: str) -> str:
        try:
            return await asyncio.to_thread(self.objects.get_public_url, self.config.bucket, path)
        except Exception as e:
            raise UploadError(path, f"could not resolve public URL: {e}") from e
