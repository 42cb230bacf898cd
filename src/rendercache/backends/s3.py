"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

S3-backed cache storage with per-object tag metadata.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from functools import partial
from typing import Any
from urllib.parse import urlencode

import boto3
from botocore.exceptions import ClientError

from ..types import CacheEntry, PageValue, RenderContext
from .base import (
    CACHE_EXTENSIONS,
    CHUNK_LIMIT,
    chunked,
    is_path_tag,
    matches_allow_filter,
    path_from_tag,
)

logger = logging.getLogger("rendercache.backends.s3")

TAG_PREFIX = "revalidateTag"
NOT_FOUND_ERROR_CODES = frozenset({"NotFound", "NoSuchKey", "404"})
# S3 rejects objects carrying more than 10 tags.
MAX_OBJECT_TAGS = 10


def is_not_found(error: ClientError) -> bool:
    """Return whether a botocore error represents a missing object."""
    code = str(error.response.get("Error", {}).get("Code", ""))
    return code in NOT_FOUND_ERROR_CODES


def build_tagging(tags: Sequence[str]) -> str:
    """Encode tags as ``revalidateTag0=a&revalidateTag1=b`` object tagging."""
    if len(tags) > MAX_OBJECT_TAGS:
        logger.warning(
            "Dropping %d tags beyond the S3 per-object limit of %d",
            len(tags) - MAX_OBJECT_TAGS,
            MAX_OBJECT_TAGS,
        )
    return urlencode(
        [(f"{TAG_PREFIX}{index}", tag) for index, tag in enumerate(tags[:MAX_OBJECT_TAGS])]
    )


class S3CacheBackend:
    """
    Cache backend storing each entry as up to three S3 objects.

    Objects share the ``<base_key>/<cache_key>`` prefix and differ by
    extension: ``.json`` (always), ``.html`` (pages) and ``.rsc`` (pages
    rendered by the app router). Tags are attached as object tagging so
    invalidation can match them without downloading bodies.

    boto3 is synchronous; every call runs in the default executor.

    Args:
        bucket_name: Target bucket.
        client: Optional preconfigured S3 client.
        region_name: Region used when building the default client.
        endpoint_url: Custom endpoint for S3-compatible stores.
    """

    backend_id: str = "s3"

    def __init__(
        self,
        bucket_name: str,
        *,
        client: Any | None = None,
        region_name: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        if not bucket_name:
            raise ValueError("bucket_name must be non-empty")
        self.bucket_name = bucket_name
        self.client = client or boto3.client(
            "s3",
            region_name=region_name,
            endpoint_url=endpoint_url,
        )

    async def _call(self, method: str, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(getattr(self.client, method), **kwargs)
        )

    def _read_json_object(self, key: str) -> dict[str, Any] | None:
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            if is_not_found(exc):
                return None
            raise
        body = response.get("Body")
        if body is None:
            return None
        return json.loads(body.read().decode("utf-8"))

    async def get(self, base_key: str, cache_key: str) -> CacheEntry | None:
        key = f"{base_key}/{cache_key}.json"
        loop = asyncio.get_running_loop()
        row = await loop.run_in_executor(None, self._read_json_object, key)
        if row is None:
            return None
        return CacheEntry.from_dict(row)

    async def set(
        self,
        base_key: str,
        cache_key: str,
        entry: CacheEntry,
        ctx: RenderContext,
    ) -> None:
        prefix = f"{base_key}/{cache_key}"
        base_input: dict[str, Any] = {"Bucket": self.bucket_name}
        if entry.revalidate:
            base_input["CacheControl"] = f"max-age={entry.revalidate}"
        tags = entry.derived_tags
        if tags:
            base_input["Tagging"] = build_tagging(tags)

        writes = []
        if isinstance(entry.value, PageValue):
            writes.append(
                self._call(
                    "put_object",
                    **base_input,
                    Key=f"{prefix}.html",
                    Body=entry.value.html.encode("utf-8"),
                    ContentType="text/html",
                )
            )
            if ctx.is_app_router:
                payload = entry.value.page_data
                if not isinstance(payload, str):
                    payload = json.dumps(payload)
                writes.append(
                    self._call(
                        "put_object",
                        **base_input,
                        Key=f"{prefix}.rsc",
                        Body=payload.encode("utf-8"),
                        ContentType="text/x-component",
                    )
                )
        writes.append(
            self._call(
                "put_object",
                **base_input,
                Key=f"{prefix}.json",
                Body=json.dumps(entry.to_dict()).encode("utf-8"),
                ContentType="application/json",
            )
        )
        await asyncio.gather(*writes)

    async def delete(self, base_key: str, cache_key: str) -> None:
        await self._call(
            "delete_objects",
            Bucket=self.bucket_name,
            Delete={
                "Objects": [
                    {"Key": f"{base_key}/{cache_key}.{ext}"} for ext in CACHE_EXTENSIONS
                ]
            },
        )

    async def _list_pages(self, **params: Any):
        """Yield listing pages, following continuation tokens sequentially."""
        token: str | None = None
        while True:
            request = dict(params, Bucket=self.bucket_name)
            if token:
                request["ContinuationToken"] = token
            page = await self._call("list_objects_v2", **request)
            yield page.get("Contents") or []
            token = page.get("NextContinuationToken")
            if not token:
                return

    async def _delete_chunk(self, keys: list[str]) -> None:
        response = await self._call(
            "delete_objects",
            Bucket=self.bucket_name,
            Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
        )
        errors = (response or {}).get("Errors") or []
        for error in errors:
            logger.warning(
                "Failed to delete cache object %s: %s",
                error.get("Key"),
                error.get("Message") or error.get("Code"),
            )

    async def delete_objects(self, keys: Sequence[str]) -> None:
        """
        Delete ``keys`` in parallel chunks of at most 1000.

        A failing chunk is logged and does not abort its siblings.
        """
        if not keys:
            return
        chunks = list(chunked(list(keys), CHUNK_LIMIT))
        results = await asyncio.gather(
            *(self._delete_chunk(chunk) for chunk in chunks),
            return_exceptions=True,
        )
        for chunk, result in zip(chunks, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Cache delete chunk of %d keys failed: %s", len(chunk), result
                )

    async def delete_all_by_path(
        self,
        base_key: str,
        ctx: RenderContext | None,
        allow_cache_keys: Sequence[str],
    ) -> None:
        keys: list[str] = []
        async for contents in self._list_pages(Prefix=f"{base_key}/", Delimiter="/"):
            for item in contents:
                key = item.get("Key") or ""
                if key.rsplit(".", 1)[-1] not in CACHE_EXTENSIONS:
                    continue
                if matches_allow_filter(key, allow_cache_keys):
                    keys.append(key)
        logger.info("Deleting %d cache objects under %s/", len(keys), base_key)
        await self.delete_objects(keys)

    async def _object_tags(self, key: str) -> list[str]:
        try:
            response = await self._call(
                "get_object_tagging", Bucket=self.bucket_name, Key=key
            )
        except ClientError as exc:
            if is_not_found(exc):
                return []
            raise
        return [
            item.get("Value") or ""
            for item in response.get("TagSet") or []
            if str(item.get("Key") or "").startswith(TAG_PREFIX)
        ]

    async def revalidate_tag(
        self,
        tag: str,
        ctx: RenderContext | None,
        allow_cache_keys: Sequence[str],
    ) -> None:
        if is_path_tag(tag):
            await self.delete_all_by_path(path_from_tag(tag), ctx, allow_cache_keys)
            return

        # No tag index exists; every object's tagging is inspected.
        keys: list[str] = []
        async for contents in self._list_pages():
            candidates = [
                item["Key"]
                for item in contents
                if item.get("Key") and matches_allow_filter(item["Key"], allow_cache_keys)
            ]
            tag_sets = await asyncio.gather(*(self._object_tags(key) for key in candidates))
            keys.extend(key for key, tags in zip(candidates, tag_sets) if tag in tags)
        logger.info("Revalidating tag %s: deleting %d cache objects", tag, len(keys))
        await self.delete_objects(keys)
