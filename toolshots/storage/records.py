"""Tool record access: worklist selection and screenshot column updates."""

from __future__ import annotations

import logging
import time
from typing import Optional

from toolshots.errors import RecordUpdateError
from toolshots.models.capture import CaptureTarget
from toolshots.models.config import StorageConfig

from .supabase_store import RecordStore

logger = logging.getLogger(__name__)


class ToolRepository:
    """Reads `{id, url}` worklist rows and writes the screenshot URL list."""

    def __init__(self, store: RecordStore, config: StorageConfig):
        self.store = store
        self.config = config

    @property
    def _columns(self) -> str:
        return f"{self.config.id_column}, name, {self.config.url_column}"

    def _to_target(self, row: dict) -> CaptureTarget:
        return CaptureTarget(
            id=str(row.get(self.config.id_column)),
            url=row.get(self.config.url_column) or "",
            name=row.get("name") or "",
        )

    def published_targets(self, limit: Optional[int] = None) -> list[CaptureTarget]:
        """All published tools, newest first."""
        rows = self.store.select(
            self.config.table,
            self._columns,
            {self.config.status_column: self.config.published_status},
            order_by=self.config.order_column,
            descending=True,
            limit=limit,
        )
        logger.debug("Fetched %d published tools from %s", len(rows), self.config.table)
        return [self._to_target(r) for r in rows]

    def targets_by_ids(self, tool_ids: list[str]) -> list[CaptureTarget]:
        """Targets for the given ids, in the order requested; unknown ids are skipped."""
        if not tool_ids:
            return []
        rows = self.store.select(self.config.table, self._columns, {self.config.id_column: tool_ids})
        by_id = {str(r.get(self.config.id_column)): r for r in rows}
        return [self._to_target(by_id[i]) for i in tool_ids if i in by_id]

    def get_target(self, tool_id: str) -> Optional[CaptureTarget]:
        targets = self.targets_by_ids([tool_id])
        return targets[0] if targets else None

    def update_screenshots(self, tool_id: str, urls: list[str]) -> None:
        """Replace the screenshot list in one update call."""
        fields = {
            self.config.screenshots_column: urls,
            "updated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
        try:
            self.store.update(self.config.table, {self.config.id_column: tool_id}, fields)
        except Exception as e:
            raise RecordUpdateError(f"Failed to update screenshots for tool {tool_id}: {e}") from e
