"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Storage backend contract and shared helpers for bulk invalidation.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from typing import Protocol, TypeVar, runtime_checkable

from ..types import CacheEntry, RenderContext

T = TypeVar("T")

# Implicit tag marker for path-scoped invalidation (``_N_T_/blog/post``).
PATH_TAG_PREFIX = "_N_T_"

# Largest key batch accepted by one bulk delete/scan call.
CHUNK_LIMIT = 1000

CACHE_EXTENSIONS = ("json", "html", "rsc")
_EXTENSION_RE = re.compile(r"\.(json|html|rsc)$")


@runtime_checkable
class StorageBackend(Protocol):
    """
    Contract every cache storage backend implements.

    ``set`` is not transactional: backends writing several physical
    representations issue them concurrently and do not roll back the ones
    that succeeded when another fails. Bulk invalidation is best-effort.
    """

    backend_id: str

    async def get(self, base_key: str, cache_key: str) -> CacheEntry | None:
        """Return the stored entry, or ``None`` on a miss."""
        ...

    async def set(
        self,
        base_key: str,
        cache_key: str,
        entry: CacheEntry,
        ctx: RenderContext,
    ) -> None:
        """Write every physical representation required by ``entry.kind``."""
        ...

    async def delete(self, base_key: str, cache_key: str) -> None:
        """Remove all representations of one composite key."""
        ...

    async def delete_all_by_path(
        self,
        base_key: str,
        ctx: RenderContext | None,
        allow_cache_keys: Sequence[str],
    ) -> None:
        """Remove every entry stored under ``base_key``."""
        ...

    async def revalidate_tag(
        self,
        tag: str,
        ctx: RenderContext | None,
        allow_cache_keys: Sequence[str],
    ) -> None:
        """Remove every entry associated with ``tag``."""
        ...


def chunked(items: Sequence[T], size: int = CHUNK_LIMIT) -> Iterator[list[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError("size must be > 0")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def strip_extension(key: str) -> str:
    """Drop a trailing ``.json``/``.html``/``.rsc`` extension."""
    return _EXTENSION_RE.sub("", key)


def matches_allow_filter(address: str, allow_cache_keys: Sequence[str]) -> bool:
    """
    Return whether ``address`` passes the cache-key allow filter.

    An empty filter admits everything; otherwise the de-extensioned address
    must end with one of the allowed cache keys.
    """
    if not allow_cache_keys:
        return True
    bare = strip_extension(address)
    return any(bare.endswith(allowed) for allowed in allow_cache_keys if allowed)


def is_path_tag(tag: str) -> bool:
    return tag.startswith(PATH_TAG_PREFIX)


def path_from_tag(tag: str) -> str:
    """Strip the implicit path marker from a path-form tag."""
    return tag[len(PATH_TAG_PREFIX) :] if is_path_tag(tag) else tag
