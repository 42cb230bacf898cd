"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Composite cache key derivation from allow-listed request signals.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import quote, unquote

from user_agents import parse as parse_user_agent

logger = logging.getLogger("rendercache.keys")

KEY_SEPARATOR = "-"
COOKIE_PREFIX = "cookie"
QUERY_PREFIX = "query"


def parse_cookie_header(raw: str | None) -> dict[str, str]:
    """
    Parse a raw ``Cookie`` header into a name to value mapping.

    Malformed pairs are skipped, values are percent-decoded and stripped of
    surrounding double quotes. The first occurrence of a name wins.
    """
    cookies: dict[str, str] = {}
    if not raw:
        return cookies
    for pair in raw.split(";"):
        name, sep, value = pair.partition("=")
        name = name.strip()
        if not sep or not name or name in cookies:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        try:
            cookies[name] = unquote(value, errors="strict")
        except UnicodeDecodeError:
            cookies[name] = value
    return cookies


def _segment_value(value: Any) -> str:
    # Falsy values (0, false, "", null) never enter the key; other
    # non-string scalars keep their JSON spelling.
    if isinstance(value, list):
        value = value[0] if value else None
    if not value:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def build_cache_segment(
    names: Sequence[str],
    data: Mapping[str, Any],
    prefix: str,
) -> str:
    """
    Build one ``prefix(name=value-name=value)`` key segment.

    ``names`` is iterated in configured order; names absent from ``data`` or
    carrying an empty value are skipped. Returns ``""`` when nothing matched.
    """
    parts = []
    for name in names:
        value = _segment_value(data.get(name))
        if value:
            parts.append(f"{name}={value}")
    if not parts:
        return ""
    return f"{prefix}({KEY_SEPARATOR.join(parts)})"


def build_cookie_segment(raw_cookie_header: str | None, allowed: Sequence[str]) -> str:
    """Derive the cookie key segment from the raw ``Cookie`` header."""
    if not allowed:
        return ""
    return build_cache_segment(allowed, parse_cookie_header(raw_cookie_header), COOKIE_PREFIX)


def build_query_segment(raw_query_header: str | None, allowed: Sequence[str]) -> str:
    """
    Derive the query key segment from a URL-encoded JSON query object.

    Unparsable input is logged and contributes nothing to the key.
    """
    if not raw_query_header or not allowed:
        return ""
    try:
        parsed = json.loads(unquote(raw_query_header))
    except ValueError:
        logger.warning("Could not parse request query: %.200s", raw_query_header)
        return ""
    if not isinstance(parsed, dict):
        logger.warning("Request query is not a JSON object: %.200s", raw_query_header)
        return ""
    return build_cache_segment(allowed, parsed, QUERY_PREFIX)


def classify_device(user_agent: str | None) -> str:
    """Map a user-agent string onto ``"mobile"``, ``"tablet"`` or ``""``."""
    if not user_agent:
        return ""
    parsed = parse_user_agent(user_agent)
    if parsed.is_tablet:
        return "tablet"
    if parsed.is_mobile:
        return "mobile"
    return ""


def composite_key(
    base_key: str,
    device: str | None = None,
    cookie_segment: str = "",
    query_segment: str = "",
) -> str:
    """Join non-empty key components with ``-``."""
    parts = (base_key, device, cookie_segment, query_segment)
    return KEY_SEPARATOR.join(part for part in parts if part)


def storage_cache_key(composite: str) -> str:
    """
    Encode a composite key for use as the last storage address segment.

    Path separators are percent-encoded so every variant of a page stays one
    level below ``<base_key>/``.
    """
    return quote(composite, safe="()=,:@")
