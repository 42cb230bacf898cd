"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Page cache orchestration: key derivation, staleness and backend delegation.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace

from .backends.base import StorageBackend
from .backends.registry import create_cache_backend
from .config import CacheHandlerConfig
from .keys import (
    build_cookie_segment,
    build_query_segment,
    composite_key,
    storage_cache_key,
)
from .metrics import CacheMetrics, NoOpCacheMetrics
from .staleness import is_stale
from .types import CacheEntry, RenderContext, now_ms

logger = logging.getLogger("rendercache.handler")

COOKIE_HEADER = "cookie"
QUERY_HEADER = "x-invoke-query"
USER_AGENT_HEADER = "user-agent"


def _storage_keys(allow_cache_keys: Sequence[str]) -> list[str]:
    return [storage_cache_key(key) for key in allow_cache_keys if key]


class CacheHandler:
    """
    Request-scoped cache handler consumed by the host framework.

    Key segments are derived once at construction and reused for every
    storage call made during the request.
    """

    def __init__(
        self,
        ctx: RenderContext,
        *,
        config: CacheHandlerConfig,
        backend: StorageBackend,
        metrics: CacheMetrics | None = None,
    ) -> None:
        self.ctx = ctx
        self.config = config
        self.backend = backend
        self.metrics = metrics or NoOpCacheMetrics()
        self.cookie_cache_key = build_cookie_segment(
            ctx.header(COOKIE_HEADER), config.cache_cookies
        )
        self.query_cache_key = build_query_segment(
            ctx.header(QUERY_HEADER), config.cache_queries
        )
        self.device: str | None = None
        if config.enable_device_split:
            self.device = config.device_classifier(ctx.header(USER_AGENT_HEADER))

    def page_cache_key(self, key: str) -> str:
        """Composite key for ``key`` under this request's signals."""
        return composite_key(key, self.device, self.cookie_cache_key, self.query_cache_key)

    def _cache_key(self, key: str) -> str:
        return storage_cache_key(self.page_cache_key(key))

    async def get(self, key: str) -> CacheEntry | None:
        """Return a fresh entry, or ``None`` on a miss or a stale entry."""
        entry = await self.backend.get(key, self._cache_key(key))
        if entry is None:
            self.metrics.incr("cache_get", tags={"result": "miss"})
            logger.debug("Cache miss for %s", self.page_cache_key(key))
            return None
        if is_stale(entry):
            self.metrics.incr("cache_get", tags={"result": "stale"})
            logger.debug("Stale cache entry for %s", self.page_cache_key(key))
            return None
        self.metrics.incr("cache_get", tags={"result": "hit"})
        return entry

    async def set(self, key: str, entry: CacheEntry) -> None:
        """
        Persist ``entry`` under this request's composite key.

        Every write is a full overwrite stamped with the current time; the
        caller's entry is left untouched.
        """
        entry = replace(entry, last_modified=now_ms())
        await self.backend.set(key, self._cache_key(key), entry, self.ctx)
        self.metrics.incr("cache_set", tags={"kind": entry.kind})

    async def delete(self, key: str) -> None:
        await self.backend.delete(key, self._cache_key(key))

    async def revalidate_tag(self, tag: str, allow_cache_keys: Sequence[str] = ()) -> None:
        await self.backend.revalidate_tag(tag, self.ctx, _storage_keys(allow_cache_keys))
        self.metrics.incr("cache_invalidate", tags={"scope": "tag"})


class PageCache:
    """
    Process-wide wiring of configuration, backend and metrics.

    Built once before serving and never mutated; ``for_request`` creates
    the per-request ``CacheHandler``.

    Args:
        backend: Backend instance or registered backend id (defaults to the
            shared in-memory backend).
        config: Allow-lists and device split flag.
        metrics: Optional metrics sink.
    """

    def __init__(
        self,
        backend: str | StorageBackend | None = None,
        *,
        config: CacheHandlerConfig | None = None,
        metrics: CacheMetrics | None = None,
    ) -> None:
        self.backend = create_cache_backend(backend)
        self.config = config or CacheHandlerConfig()
        self.metrics = metrics or NoOpCacheMetrics()

    def for_request(self, ctx: RenderContext) -> CacheHandler:
        return CacheHandler(ctx, config=self.config, backend=self.backend, metrics=self.metrics)

    async def revalidate_tag(
        self,
        tag: str,
        *,
        allow_cache_keys: Sequence[str] = (),
        ctx: RenderContext | None = None,
    ) -> None:
        """Invalidate every entry carrying ``tag``."""
        await self.backend.revalidate_tag(tag, ctx, _storage_keys(allow_cache_keys))
        self.metrics.incr("cache_invalidate", tags={"scope": "tag"})

    async def delete_path(
        self,
        path: str,
        *,
        allow_cache_keys: Sequence[str] = (),
        ctx: RenderContext | None = None,
    ) -> None:
        """Invalidate every entry stored under ``path``."""
        await self.backend.delete_all_by_path(path, ctx, _storage_keys(allow_cache_keys))
        self.metrics.incr("cache_invalidate", tags={"scope": "path"})
