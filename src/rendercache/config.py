"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Process-wide key derivation settings, assembled once before serving.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace

from .errors import CacheConfigError
from .keys import classify_device

_TRUTHY = ("1", "true", "yes", "on")


def _merge_names(existing: tuple[str, ...], names: Iterable[str]) -> tuple[str, ...]:
    merged = list(existing)
    for name in names:
        value = str(name).strip()
        if not value:
            raise CacheConfigError("Allow-list names must be non-empty")
        if value not in merged:
            merged.append(value)
    return tuple(merged)


def _split_env_list(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True, slots=True)
class CacheHandlerConfig:
    """
    Immutable allow-lists and flags that participate in key derivation.

    Attributes:
        cache_cookies: Cookie names, in key order.
        cache_queries: Query parameter names, in key order.
        enable_device_split: Whether the device class becomes part of the key.
        device_classifier: Maps a user-agent string onto a device label.
    """

    cache_cookies: tuple[str, ...] = ()
    cache_queries: tuple[str, ...] = ()
    enable_device_split: bool = False
    device_classifier: Callable[[str | None], str] = field(default=classify_device)

    def with_cookies(self, *names: str) -> CacheHandlerConfig:
        """Return a copy with ``names`` appended to the cookie allow-list."""
        return replace(self, cache_cookies=_merge_names(self.cache_cookies, names))

    def with_queries(self, *names: str) -> CacheHandlerConfig:
        """Return a copy with ``names`` appended to the query allow-list."""
        return replace(self, cache_queries=_merge_names(self.cache_queries, names))

    def with_device_split(
        self,
        classifier: Callable[[str | None], str] | None = None,
    ) -> CacheHandlerConfig:
        """Return a copy with device-class splitting enabled."""
        return replace(
            self,
            enable_device_split=True,
            device_classifier=classifier or self.device_classifier,
        )

    @staticmethod
    def from_env() -> CacheHandlerConfig:
        """Load allow-lists from ``RENDERCACHE_*`` environment variables."""
        config = CacheHandlerConfig()
        config = config.with_cookies(*_split_env_list(os.getenv("RENDERCACHE_CACHE_COOKIES")))
        config = config.with_queries(*_split_env_list(os.getenv("RENDERCACHE_CACHE_QUERIES")))
        device_split = os.getenv("RENDERCACHE_DEVICE_SPLIT", "").strip().lower()
        if device_split in _TRUTHY:
            config = config.with_device_split()
        return config
