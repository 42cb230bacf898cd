"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Factory helpers for selecting cache backends from environment variables.
"""

from __future__ import annotations

import os
from typing import Any

from .backends.base import StorageBackend
from .backends.memory import InMemoryCacheBackend


def _env_first(*names: str, default: str | None = None) -> str | None:
    """
    Return the first non-empty environment variable in `names`.

    Args:
        *names: Environment variable names to check in order.
        default: Value returned if no non-empty variable is found.
    """
    for name in names:
        raw = os.getenv(name)
        if raw is None:
            continue
        value = raw.strip()
        if value:
            return value
    return default


def _redis_url_from_env() -> str:
    url = _env_first("RENDERCACHE_REDIS_URL")
    if url:
        return url
    host = _env_first("RENDERCACHE_REDIS_HOST", default="localhost") or "localhost"
    port = _env_first("RENDERCACHE_REDIS_PORT", default="6379") or "6379"
    db = _env_first("RENDERCACHE_REDIS_DB", default="0") or "0"
    password = _env_first("RENDERCACHE_REDIS_PASSWORD", default="") or ""
    if password:
        return f"redis://:{password}@{host}:{port}/{db}"
    return f"redis://{host}:{port}/{db}"


def create_cache_backend_from_env(
    *,
    redis_client: Any | None = None,
    s3_client: Any | None = None,
) -> StorageBackend:
    """
    Create a cache backend from `RENDERCACHE_*` environment variables.

    Backends:
    - `memory` (default)
    - `s3`: bucket from `RENDERCACHE_S3_BUCKET`; region from
      `RENDERCACHE_S3_REGION` (or `AWS_REGION`); optional
      `RENDERCACHE_S3_ENDPOINT_URL`.
    - `redis`: uses the provided `redis_client` when supplied, otherwise
      `RENDERCACHE_REDIS_URL` or host/port/db/password variables; record
      layout from `RENDERCACHE_REDIS_ADAPTER` (`string` or `hash`); optional
      address namespace from `RENDERCACHE_REDIS_KEY_PREFIX`.
    """
    backend = os.getenv("RENDERCACHE_BACKEND", "memory").strip().lower()

    if backend in ("mem", "memory", "inmemory", "in_memory"):
        return InMemoryCacheBackend()

    if backend == "s3":
        from .backends.s3 import S3CacheBackend

        bucket = _env_first("RENDERCACHE_S3_BUCKET")
        if not bucket:
            raise ValueError("RENDERCACHE_S3_BUCKET must be set for the s3 backend")
        return S3CacheBackend(
            bucket,
            client=s3_client,
            region_name=_env_first("RENDERCACHE_S3_REGION", "AWS_REGION"),
            endpoint_url=_env_first("RENDERCACHE_S3_ENDPOINT_URL"),
        )

    if backend == "redis":
        from .backends.redis import RedisCacheBackend

        client = redis_client
        if client is None:
            try:
                import redis.asyncio as redis
            except ModuleNotFoundError as exc:  # pragma: no cover
                raise RuntimeError(
                    "Redis cache backend requires `redis` to be installed."
                ) from exc
            client = redis.Redis.from_url(_redis_url_from_env())

        adapter = _env_first("RENDERCACHE_REDIS_ADAPTER", default="string") or "string"
        return RedisCacheBackend(
            client,
            adapter=adapter.lower(),
            key_prefix=_env_first("RENDERCACHE_REDIS_KEY_PREFIX", default="") or "",
        )

    raise ValueError(f"Unknown RENDERCACHE_BACKEND: {backend}")
