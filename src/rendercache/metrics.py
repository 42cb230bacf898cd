"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Metrics adapters for cache handler observability.

The handler emits three counters:

- ``cache_get`` labelled ``result`` (``hit``, ``miss``, ``stale``)
- ``cache_set`` labelled ``kind`` (``PAGE``, ``ROUTE``, ``FETCH``)
- ``cache_invalidate`` labelled ``scope`` (``tag``, ``path``)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

# counter name -> (label name, help text)
CACHE_COUNTERS: dict[str, tuple[str, str]] = {
    "cache_get": ("result", "Cache lookups by outcome"),
    "cache_set": ("kind", "Cache writes by entry kind"),
    "cache_invalidate": ("scope", "Bulk invalidations by scope"),
}


class CacheMetrics(Protocol):
    """Sink for the handler's cache counters."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None: ...


class NoOpCacheMetrics:
    """Discards every counter update."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        return None


class PrometheusCacheMetrics:
    """
    Expose the cache counters through ``prometheus_client``.

    All counters are declared up front with one fixed label each, so a
    scrape shows the full metric set even before traffic arrives. Samples
    are named ``<namespace>_<counter>_total``.

    Args:
        namespace: Metric name prefix.
        registry: Collector registry (defaults to the global one).
    """

    def __init__(self, *, namespace: str = "rendercache", registry=None) -> None:
        try:
            from prometheus_client import REGISTRY, Counter
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError(
                "PrometheusCacheMetrics requires `prometheus_client` to be installed."
            ) from exc

        target = registry if registry is not None else REGISTRY
        self._counters = {
            name: (
                label,
                Counter(
                    name,
                    help_text,
                    labelnames=(label,),
                    namespace=namespace,
                    registry=target,
                ),
            )
            for name, (label, help_text) in CACHE_COUNTERS.items()
        }

    def incr(self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None) -> None:
        try:
            label, counter = self._counters[name]
        except KeyError:
            raise ValueError(f"Unknown cache counter: {name}") from None
        counter.labels(str((tags or {}).get(label, "unknown"))).inc(value)
