"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Redis-backed cache storage with cursor-scan invalidation.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import Enum
from typing import Any

from ...types import CacheEntry, RenderContext
from ..base import CHUNK_LIMIT
from .adapters import (
    ADDRESS_SEPARATOR,
    RedisAdapter,
    RedisHashAdapter,
    RedisStringAdapter,
    address,
    escape_glob,
)

logger = logging.getLogger("rendercache.backends.redis")


class RedisAdapterKind(str, Enum):
    """Record layout selected once per backend instance."""

    STRING = "string"
    HASH = "hash"


_ADAPTERS = {
    RedisAdapterKind.STRING: RedisStringAdapter,
    RedisAdapterKind.HASH: RedisHashAdapter,
}


class RedisCacheBackend:
    """
    Cache backend over Redis.

    Record layout is delegated to a ``RedisAdapter``; scanning and bulk
    ``UNLINK`` go through the adapter's raw client.

    Requires ``redis.asyncio`` (``pip install redis``).

    Args:
        client: An ``redis.asyncio.Redis`` client instance.
        adapter: Record layout, ``"string"`` (default) or ``"hash"``.
        scan_count: ``COUNT`` hint for path scans.
        key_prefix: Namespace prepended to every record address.
        **adapter_options: Extra keyword arguments for the adapter.
    """

    backend_id: str = "redis"

    def __init__(
        self,
        client: Any,
        *,
        adapter: RedisAdapterKind | str = RedisAdapterKind.STRING,
        scan_count: int = CHUNK_LIMIT,
        key_prefix: str = "",
        **adapter_options: Any,
    ) -> None:
        try:
            kind = RedisAdapterKind(adapter)
        except ValueError as exc:
            raise ValueError(f"Unknown Redis adapter: {adapter}") from exc
        self.adapter_kind = kind
        self.adapter: RedisAdapter = _ADAPTERS[kind](
            client, key_prefix=key_prefix, **adapter_options
        )
        self.key_prefix = key_prefix
        self._scan_count = scan_count

    @property
    def client(self) -> Any:
        return self.adapter.client

    async def get(self, base_key: str, cache_key: str) -> CacheEntry | None:
        return await self.adapter.get(base_key, cache_key)

    async def set(
        self,
        base_key: str,
        cache_key: str,
        entry: CacheEntry,
        ctx: RenderContext,
    ) -> None:
        await self.adapter.set(base_key, cache_key, entry)

    async def delete(self, base_key: str, cache_key: str) -> None:
        await self.client.unlink(address(base_key, cache_key, self.key_prefix))

    async def revalidate_tag(
        self,
        tag: str,
        ctx: RenderContext | None,
        allow_cache_keys: Sequence[str],
    ) -> None:
        keys = await self.adapter.find_cache_keys(tag, allow_cache_keys)
        logger.info("Revalidating tag %s: unlinking %d records", tag, len(keys))
        if keys:
            await self.client.unlink(*keys)

    async def delete_all_by_path(
        self,
        base_key: str,
        ctx: RenderContext | None,
        allow_cache_keys: Sequence[str],
    ) -> None:
        """
        Unlink records under ``base_key``.

        Listed cache keys are unlinked directly; without a filter the key
        space is walked with ``SCAN`` until the cursor returns to 0.
        """
        if allow_cache_keys:
            await self.client.unlink(
                *(
                    address(base_key, cache_key, self.key_prefix)
                    for cache_key in allow_cache_keys
                )
            )
            return

        pattern = f"{escape_glob(self.key_prefix + base_key)}{ADDRESS_SEPARATOR}*"
        keys: list[Any] = []
        cursor = 0
        while True:
            cursor, batch = await self.client.scan(
                cursor=cursor, match=pattern, count=self._scan_count
            )
            keys.extend(batch)
            if int(cursor) == 0:
                break
        logger.info("Unlinking %d records under %s", len(keys), base_key)
        if keys:
            await self.client.unlink(*keys)
