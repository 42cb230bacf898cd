"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Process-local cache backend.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from ..types import CacheEntry, RenderContext
from .base import is_path_tag, matches_allow_filter, path_from_tag


@dataclass(slots=True)
class InMemoryCacheBackend:
    """
    Dict-backed cache backend suitable for development/test workloads.

    Entries are keyed by ``<base_key>/<cache_key>`` and follow the object
    store semantics, including path-form tags.
    """

    backend_id: str = "memory"

    _rows: dict[str, CacheEntry] = field(default_factory=dict, init=False, repr=False)

    def __len__(self) -> int:
        return len(self._rows)

    async def get(self, base_key: str, cache_key: str) -> CacheEntry | None:
        row = self._rows.get(f"{base_key}/{cache_key}")
        if row is None:
            return None
        return CacheEntry.from_dict(row.to_dict())

    async def set(
        self,
        base_key: str,
        cache_key: str,
        entry: CacheEntry,
        ctx: RenderContext,
    ) -> None:
        self._rows[f"{base_key}/{cache_key}"] = CacheEntry.from_dict(entry.to_dict())

    async def delete(self, base_key: str, cache_key: str) -> None:
        self._rows.pop(f"{base_key}/{cache_key}", None)

    async def delete_all_by_path(
        self,
        base_key: str,
        ctx: RenderContext | None,
        allow_cache_keys: Sequence[str],
    ) -> None:
        prefix = f"{base_key}/"
        for key in list(self._rows):
            if not key.startswith(prefix) or "/" in key[len(prefix) :]:
                continue
            if matches_allow_filter(key, allow_cache_keys):
                del self._rows[key]

    async def revalidate_tag(
        self,
        tag: str,
        ctx: RenderContext | None,
        allow_cache_keys: Sequence[str],
    ) -> None:
        if is_path_tag(tag):
            await self.delete_all_by_path(path_from_tag(tag), ctx, allow_cache_keys)
            return
        for key, row in list(self._rows.items()):
            if tag in row.derived_tags and matches_allow_filter(key, allow_cache_keys):
                del self._rows[key]
