"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Record layouts used by the Redis cache backend.

Two interchangeable adapters implement ``RedisAdapter``:

- ``RedisStringAdapter`` stores the serialized entry as one string value
  and recovers tags by scanning and decoding candidate values.
- ``RedisHashAdapter`` stores one hash field per representation and lets
  a RediSearch ``TAG`` index match tags server-side.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any, Protocol

from redis.exceptions import ResponseError

from ...errors import CacheEntryDecodeError
from ...types import CacheEntry, PageValue
from ..base import CHUNK_LIMIT, chunked, matches_allow_filter

logger = logging.getLogger("rendercache.backends.redis")

ADDRESS_SEPARATOR = "//"
DEFAULT_INDEX_NAME = "rendercache:tags"
_TAG_QUERY_ESCAPE_RE = re.compile(r"([^A-Za-z0-9_])")
_GLOB_ESCAPE_RE = re.compile(r"([*?\[\]\\])")


def address(base_key: str, cache_key: str, key_prefix: str = "") -> str:
    """Return the record address ``<key_prefix><base_key>//<cache_key>``."""
    return f"{key_prefix}{base_key}{ADDRESS_SEPARATOR}{cache_key}"


def escape_glob(value: str) -> str:
    """Escape ``SCAN MATCH`` glob metacharacters in ``value``."""
    return _GLOB_ESCAPE_RE.sub(r"\\\1", value)


def _text(raw: str | bytes) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8")
    return str(raw)


def _decode_entry(raw: str | bytes) -> CacheEntry:
    return CacheEntry.from_dict(json.loads(_text(raw)))


class RedisAdapter(Protocol):
    """Record layout contract shared by Redis adapter variants."""

    client: Any
    key_prefix: str

    async def get(self, base_key: str, cache_key: str) -> CacheEntry | None: ...

    async def set(self, base_key: str, cache_key: str, entry: CacheEntry) -> None: ...

    async def find_cache_keys(
        self, tag: str, allow_cache_keys: Sequence[str]
    ) -> list[str]: ...


class RedisStringAdapter:
    """
    Flat record layout: ``SET <address> <json>``.

    Args:
        client: A ``redis.asyncio.Redis`` client instance.
        scan_count: ``COUNT`` hint passed to ``SCAN``.
        key_prefix: Namespace prepended to every record address.
    """

    def __init__(
        self,
        client: Any,
        *,
        scan_count: int = CHUNK_LIMIT,
        key_prefix: str = "",
    ) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self._scan_count = scan_count

    async def get(self, base_key: str, cache_key: str) -> CacheEntry | None:
        raw = await self.client.get(address(base_key, cache_key, self.key_prefix))
        if raw is None:
            return None
        return _decode_entry(raw)

    async def set(self, base_key: str, cache_key: str, entry: CacheEntry) -> None:
        await self.client.set(
            address(base_key, cache_key, self.key_prefix), json.dumps(entry.to_dict())
        )

    async def find_cache_keys(self, tag: str, allow_cache_keys: Sequence[str]) -> list[str]:
        """Scan every record address and decode values to match ``tag``."""
        candidates: list[str] = []
        async for raw_key in self.client.scan_iter(
            match=f"{escape_glob(self.key_prefix)}*{ADDRESS_SEPARATOR}*",
            count=self._scan_count,
        ):
            key = _text(raw_key)
            if matches_allow_filter(key, allow_cache_keys):
                candidates.append(key)

        matched: list[str] = []
        for batch in chunked(candidates, self._scan_count):
            values = await self.client.mget(batch)
            for key, raw in zip(batch, values):
                if raw is None:
                    continue
                try:
                    entry = _decode_entry(raw)
                except (ValueError, CacheEntryDecodeError):
                    logger.debug("Skipping undecodable cache record %s", key)
                    continue
                if tag in entry.derived_tags:
                    matched.append(key)
        return matched


class RedisHashAdapter:
    """
    Structured record layout: one hash per entry.

    Fields: ``json`` (serialized entry), ``html``, ``rsc`` and ``tags``
    (comma-joined). Tag lookups use a RediSearch index over the ``tags``
    field, created on first use; Redis Stack (or the search module) is
    required for ``find_cache_keys``.

    Args:
        client: A ``redis.asyncio.Redis`` client instance.
        index_name: RediSearch index covering cache hashes.
        page_size: Result page size for ``FT.SEARCH``.
        key_prefix: Namespace prepended to every record address; when set it
            also becomes the index ``PREFIX`` so foreign hashes stay out of it.
    """

    def __init__(
        self,
        client: Any,
        *,
        index_name: str = DEFAULT_INDEX_NAME,
        page_size: int = CHUNK_LIMIT,
        key_prefix: str = "",
    ) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self.index_name = index_name
        self._page_size = page_size
        self._index_ready = False

    async def get(self, base_key: str, cache_key: str) -> CacheEntry | None:
        raw = await self.client.hget(address(base_key, cache_key, self.key_prefix), "json")
        if raw is None:
            return None
        return _decode_entry(raw)

    async def set(self, base_key: str, cache_key: str, entry: CacheEntry) -> None:
        record = {
            "json": json.dumps(entry.to_dict()),
            "html": "",
            "rsc": "",
            "tags": ",".join(entry.derived_tags),
        }
        if isinstance(entry.value, PageValue):
            record["html"] = entry.value.html
            payload = entry.value.page_data
            record["rsc"] = payload if isinstance(payload, str) else json.dumps(payload)

        key = address(base_key, cache_key, self.key_prefix)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            pipe.hset(key, mapping=record)
            await pipe.execute()

    async def ensure_index(self) -> None:
        """Create the tag index unless it already exists."""
        if self._index_ready:
            return
        command: list[Any] = ["FT.CREATE", self.index_name, "ON", "HASH"]
        if self.key_prefix:
            command += ["PREFIX", 1, self.key_prefix]
        command += ["SCHEMA", "tags", "TAG", "SEPARATOR", ","]
        try:
            await self.client.execute_command(*command)
        except ResponseError as exc:
            if "already exists" not in str(exc).lower():
                raise
        self._index_ready = True

    def _is_cache_address(self, key: str) -> bool:
        return key.startswith(self.key_prefix) and ADDRESS_SEPARATOR in key

    async def find_cache_keys(self, tag: str, allow_cache_keys: Sequence[str]) -> list[str]:
        """Page through ``FT.SEARCH @tags:{tag}`` results."""
        await self.ensure_index()
        query = "@tags:{%s}" % _TAG_QUERY_ESCAPE_RE.sub(r"\\\1", tag)
        matched: list[str] = []
        offset = 0
        while True:
            reply = await self.client.execute_command(
                "FT.SEARCH",
                self.index_name,
                query,
                "NOCONTENT",
                "LIMIT",
                offset,
                self._page_size,
                "DIALECT",
                2,
            )
            total = int(reply[0])
            ids = [_text(item) for item in reply[1:]]
            matched.extend(
                key
                for key in ids
                if self._is_cache_address(key) and matches_allow_filter(key, allow_cache_keys)
            )
            offset += self._page_size
            if not ids or offset >= total:
                return matched
