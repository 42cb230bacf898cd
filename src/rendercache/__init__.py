"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Pluggable page-cache storage for server-rendered applications.

Derives request-scoped cache keys from allow-listed cookies, query
parameters and device class, persists rendered artifacts in an
interchangeable backend (S3, Redis, in-memory) and supports tag/path bulk
invalidation.

Quick start::

    from rendercache import CacheHandlerConfig, PageCache, RenderContext
    from rendercache.backends import RedisCacheBackend

    config = CacheHandlerConfig().with_cookies("locale").with_device_split()
    page_cache = PageCache(RedisCacheBackend(redis_client), config=config)

    handler = page_cache.for_request(RenderContext(headers=request_headers))
    entry = await handler.get("/blog/post")
"""

from .config import CacheHandlerConfig
from .errors import (
    CacheBackendError,
    CacheConfigError,
    CacheEntryDecodeError,
    RenderCacheError,
)
from .factory import create_cache_backend_from_env
from .handler import CacheHandler, PageCache
from .keys import (
    build_cookie_segment,
    build_query_segment,
    classify_device,
    composite_key,
    parse_cookie_header,
    storage_cache_key,
)
from .metrics import CacheMetrics, NoOpCacheMetrics, PrometheusCacheMetrics
from .staleness import is_stale
from .types import (
    NEXT_CACHE_TAGS_HEADER,
    CacheEntry,
    CacheValue,
    FetchValue,
    PageValue,
    RenderContext,
    RouteValue,
)

__all__ = [
    "CacheHandlerConfig",
    "CacheHandler",
    "PageCache",
    "CacheEntry",
    "CacheValue",
    "PageValue",
    "RouteValue",
    "FetchValue",
    "RenderContext",
    "NEXT_CACHE_TAGS_HEADER",
    "RenderCacheError",
    "CacheBackendError",
    "CacheConfigError",
    "CacheEntryDecodeError",
    "build_cookie_segment",
    "build_query_segment",
    "classify_device",
    "composite_key",
    "parse_cookie_header",
    "storage_cache_key",
    "is_stale",
    "create_cache_backend_from_env",
    "CacheMetrics",
    "NoOpCacheMetrics",
    "PrometheusCacheMetrics",
    "RevalidationServiceHost",
]


def __getattr__(name: str):
    """Lazily expose the HTTP host, which requires FastAPI."""
    if name == "RevalidationServiceHost":
        from .server import RevalidationServiceHost

        return RevalidationServiceHost
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
