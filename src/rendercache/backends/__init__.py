"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Cache storage backends and registry utilities.
"""

from .base import (
    CHUNK_LIMIT,
    PATH_TAG_PREFIX,
    StorageBackend,
    chunked,
    matches_allow_filter,
    strip_extension,
)
from .memory import InMemoryCacheBackend
from .registry import (
    create_cache_backend,
    get_cache_backend,
    list_cache_backends,
    register_cache_backend,
)

__all__ = [
    "CHUNK_LIMIT",
    "PATH_TAG_PREFIX",
    "StorageBackend",
    "chunked",
    "matches_allow_filter",
    "strip_extension",
    "InMemoryCacheBackend",
    "register_cache_backend",
    "get_cache_backend",
    "create_cache_backend",
    "list_cache_backends",
    "S3CacheBackend",
    "RedisCacheBackend",
    "RedisAdapterKind",
]


def __getattr__(name: str):
    """Lazily expose backends that require optional client libraries."""
    if name == "S3CacheBackend":
        from .s3 import S3CacheBackend

        return S3CacheBackend
    if name in ("RedisCacheBackend", "RedisAdapterKind"):
        from . import redis as redis_backend

        return getattr(redis_backend, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
