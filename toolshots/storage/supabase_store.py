"""Supabase adapter for object storage and the relational tool table."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from toolshots.errors import UploadError
from toolshots.models.config import SupabaseCredentials

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    def upload(
        self, bucket: str, path: str, data: bytes, *,
        upsert: bool, content_type: str, cache_control: int,
    ) -> None: ...

    def get_public_url(self, bucket: str, path: str) -> str: ...

    def bucket_exists(self, bucket: str) -> bool: ...

    def create_bucket(
        self, bucket: str, *, public: bool, file_size_limit: int,
        allowed_mime_types: Optional[list[str]] = None,
    ) -> None: ...


class RecordStore(Protocol):
    def select(
        self, table: str, columns: str, filters: Optional[dict[str, Any]] = None, *,
        order_by: Optional[str] = None, descending: bool = True, limit: Optional[int] = None,
    ) -> list[dict]: ...

    def update(self, table: str, filters: dict[str, Any], fields: dict[str, Any]) -> list[dict]: ...


class SupabaseStore:
    """Implements both ObjectStore and RecordStore on a supabase-py client."""

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_env(cls) -> "SupabaseStore":
        creds = SupabaseCredentials.from_env()
        from supabase import create_client

        return cls(create_client(creds.url, creds.service_key))

    # ── Object storage ──

    def upload(
        self, bucket: str, path: str, data: bytes, *,
        upsert: bool = True, content_type: str = "image/webp", cache_control: int = 2_592_000,
    ) -> None:
        try:
            self.client.storage.from_(bucket).upload(
                path=path,
                file=data,
                file_options={
                    "content-type": content_type,
                    "cache-control": str(cache_control),
                    "upsert": "true" if upsert else "false",
                },
            )
        except Exception as e:
            raise UploadError(path, str(e)) from e

    def get_public_url(self, bucket: str, path: str) -> str:
        url = self.client.storage.from_(bucket).get_public_url(path)
        if isinstance(url, dict):
            # Older clients wrap the URL in a response dict
            url = url.get("publicURL") or url.get("publicUrl") or ""
        return str(url).rstrip("?")

    def bucket_exists(self, bucket: str) -> bool:
        try:
            self.client.storage.get_bucket(bucket)
            return True
        except Exception as e:
            logger.debug("Bucket lookup for %s failed: %s", bucket, e)
            return False

    def create_bucket(
        self, bucket: str, *, public: bool = True, file_size_limit: int = 10 * 1024 * 1024,
        allowed_mime_types: Optional[list[str]] = None,
    ) -> None:
        options: dict[str, Any] = {"public": public, "file_size_limit": file_size_limit}
        if allowed_mime_types:
            options["allowed_mime_types"] = allowed_mime_types
        self.client.storage.create_bucket(bucket, options=options)

    # ── Relational store ──

    def select(
        self, table: str, columns: str, filters: Optional[dict[str, Any]] = None, *,
        order_by: Optional[str] = None, descending: bool = True, limit: Optional[int] = None,
    ) -> list[dict]:
        query = self.client.table(table).select(columns)
        query = _apply_filters(query, filters or {})
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(limit)
        return query.execute().data or []

    def update(self, table: str, filters: dict[str, Any], fields: dict[str, Any]) -> list[dict]:
        query = _apply_filters(self.client.table(table).update(fields), filters)
        return query.execute().data or []


def _apply_filters(query, filters: dict[str, Any]):
    for column, value in filters.items():
        if isinstance(value, (list, tuple, set)):
            query = query.in_(column, list(value))
        else:
            query = query.eq(column, value)
    return query
