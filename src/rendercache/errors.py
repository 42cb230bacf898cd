"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error hierarchy for the render cache package.
"""


class RenderCacheError(RuntimeError):
    """Base render cache error."""


class CacheBackendError(RenderCacheError):
    """Raised when cache backend registration/resolution fails."""


class CacheConfigError(ValueError):
    """Raised when cache handler configuration is invalid."""


class CacheEntryDecodeError(ValueError):
    """Raised when a stored payload cannot be decoded into a cache entry."""
