"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Staleness policy applied to entries fetched from a cache backend.
"""

from __future__ import annotations

from .types import CacheEntry, now_ms


def is_stale(entry: CacheEntry | None, *, now: int | None = None) -> bool:
    """
    Return whether a fetched entry must be reported as a miss.

    Entries without a ``revalidate`` window are never stale here; their
    freshness is governed by the host framework. The boundary instant
    ``last_modified + revalidate * 1000`` still counts as fresh.

    Args:
        entry: Entry returned by a backend, or ``None``.
        now: Current time in epoch milliseconds (defaults to wall clock).
    """
    if entry is None or not entry.revalidate:
        return False
    current = now_ms() if now is None else now
    last_modified = entry.last_modified or 0
    return current > last_modified + entry.revalidate * 1000
