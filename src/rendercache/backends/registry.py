"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Registry for pluggable cache storage backends.
"""

from __future__ import annotations

from threading import Lock

from ..errors import CacheBackendError
from .base import StorageBackend
from .memory import InMemoryCacheBackend

DEFAULT_BACKEND_ID = "memory"

_REGISTRY: dict[str, StorageBackend] = {}
_LOCK = Lock()


def register_cache_backend(
    backend: StorageBackend,
    *,
    overwrite: bool = False,
) -> None:
    """Register one cache backend by `backend_id`."""
    key = str(backend.backend_id).strip().lower()
    if not key:
        raise CacheBackendError("Cache backend id must be non-empty")

    with _LOCK:
        if key in _REGISTRY and not overwrite:
            raise CacheBackendError(f"Cache backend already registered: {key}")
        _REGISTRY[key] = backend


def get_cache_backend(backend_id: str) -> StorageBackend:
    """Resolve one registered cache backend by id."""
    key = str(backend_id).strip().lower()
    with _LOCK:
        backend = _REGISTRY.get(key)
    if backend is None:
        raise CacheBackendError(f"Unknown cache backend '{backend_id}'")
    return backend


def _default_backend() -> StorageBackend:
    with _LOCK:
        existing = _REGISTRY.get(DEFAULT_BACKEND_ID)
        if existing is None:
            existing = InMemoryCacheBackend()
            _REGISTRY[DEFAULT_BACKEND_ID] = existing
    return existing


def create_cache_backend(backend: str | StorageBackend | None = None) -> StorageBackend:
    """Resolve cache backend instance from id/instance/default."""
    if backend is None:
        return _default_backend()
    if not isinstance(backend, str):
        return backend
    if backend.strip().lower() == DEFAULT_BACKEND_ID:
        return _default_backend()
    return get_cache_backend(backend)


def list_cache_backends() -> list[str]:
    """List registered cache backend ids."""
    with _LOCK:
        return sorted(_REGISTRY.keys())
