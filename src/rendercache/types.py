"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Cache entry, value variant, and render context types shared by every backend.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

from .errors import CacheEntryDecodeError

JSONPrimitive: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]

EntryKind = Literal["PAGE", "ROUTE", "FETCH"]

# Response header carrying comma-separated tags for rendered pages/routes.
NEXT_CACHE_TAGS_HEADER = "x-next-cache-tags"


def now_ms() -> int:
    """Return wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class PageValue:
    """
    Rendered page artifacts.

    Attributes:
        html: Rendered HTML document.
        page_data: Serialized component payload when app-router rendering is
            active, page props JSON otherwise.
        status: Optional HTTP status captured at render time.
    """

    html: str
    page_data: JSONValue = None
    status: int | None = None
    kind: Literal["PAGE"] = field(default="PAGE", init=False)


@dataclass(frozen=True, slots=True)
class RouteValue:
    """Route handler response body and status."""

    body: str
    status: int = 200
    kind: Literal["ROUTE"] = field(default="ROUTE", init=False)


@dataclass(frozen=True, slots=True)
class FetchValue:
    """Opaque JSON result of a cached data fetch."""

    data: JSONValue
    url: str | None = None
    kind: Literal["FETCH"] = field(default="FETCH", init=False)


CacheValue: TypeAlias = PageValue | RouteValue | FetchValue


def _split_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def _value_to_dict(value: CacheValue) -> dict[str, JSONValue]:
    if isinstance(value, PageValue):
        return {
            "kind": value.kind,
            "html": value.html,
            "page_data": value.page_data,
            "status": value.status,
        }
    if isinstance(value, RouteValue):
        return {"kind": value.kind, "body": value.body, "status": value.status}
    return {"kind": value.kind, "data": value.data, "url": value.url}


def _value_from_dict(row: Mapping[str, Any]) -> CacheValue:
    kind = row.get("kind")
    if kind == "PAGE":
        return PageValue(
            html=str(row.get("html") or ""),
            page_data=row.get("page_data"),
            status=row.get("status"),
        )
    if kind == "ROUTE":
        return RouteValue(body=str(row.get("body") or ""), status=int(row.get("status") or 200))
    if kind == "FETCH":
        return FetchValue(data=row.get("data"), url=row.get("url"))
    raise CacheEntryDecodeError(f"Unknown cache entry kind: {kind!r}")


@dataclass(slots=True)
class CacheEntry:
    """
    The unit of storage persisted by cache backends.

    Exactly one value variant is populated. Tags for PAGE/ROUTE entries are
    read from the ``x-next-cache-tags`` response header; every other kind
    uses the explicit ``tags`` field.

    Attributes:
        value: Page, route, or fetch payload.
        headers: Response header name to value mapping.
        tags: Explicit invalidation tags (FETCH entries).
        revalidate: Freshness window in seconds, or ``None``.
        last_modified: Write timestamp in epoch milliseconds.
    """

    value: CacheValue
    headers: dict[str, str] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    revalidate: int | None = None
    last_modified: int | None = None

    def __post_init__(self) -> None:
        if self.revalidate is not None and self.revalidate < 0:
            raise ValueError("revalidate must be >= 0")

    @property
    def kind(self) -> EntryKind:
        return self.value.kind

    @property
    def derived_tags(self) -> list[str]:
        """Tags used for invalidation, resolved from the kind-specific source."""
        if self.kind in ("PAGE", "ROUTE"):
            raw = None
            for name, value in self.headers.items():
                if name.lower() == NEXT_CACHE_TAGS_HEADER:
                    raw = value
                    break
            return _split_tags(raw)
        return list(self.tags)

    def to_dict(self) -> dict[str, JSONValue]:
        """Serialize into a JSON-safe mapping."""
        return {
            "value": _value_to_dict(self.value),
            "headers": dict(self.headers),
            "tags": list(self.tags),
            "revalidate": self.revalidate,
            "last_modified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> CacheEntry:
        """Rebuild an entry from ``to_dict`` output."""
        value = row.get("value")
        if not isinstance(value, Mapping):
            raise CacheEntryDecodeError("Cache entry payload is missing 'value'")
        headers = row.get("headers") if isinstance(row.get("headers"), Mapping) else {}
        tags = row.get("tags") if isinstance(row.get("tags"), list) else []
        revalidate = row.get("revalidate")
        last_modified = row.get("last_modified")
        return cls(
            value=_value_from_dict(value),
            headers={str(k): str(v) for k, v in headers.items()},
            tags=[str(tag) for tag in tags],
            revalidate=int(revalidate) if revalidate is not None else None,
            last_modified=int(last_modified) if last_modified is not None else None,
        )


@dataclass(frozen=True, slots=True)
class RenderContext:
    """
    Per-request signals supplied by the host framework.

    Attributes:
        headers: Raw request header values.
        is_app_router: Whether app-router rendering (component payloads) is active.
        server_dist_dir: Optional server build output directory.
    """

    headers: Mapping[str, str] = field(default_factory=dict)
    is_app_router: bool = False
    server_dist_dir: str | None = None

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        value = self.headers.get(name)
        if value is not None:
            return value
        lowered = name.lower()
        for key, candidate in self.headers.items():
            if key.lower() == lowered:
                return candidate
        return None
