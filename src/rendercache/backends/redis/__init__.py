"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Redis cache backend and its record layout adapters.
"""

from .adapters import RedisAdapter, RedisHashAdapter, RedisStringAdapter, address
from .backend import RedisAdapterKind, RedisCacheBackend

__all__ = [
    "RedisAdapter",
    "RedisAdapterKind",
    "RedisCacheBackend",
    "RedisHashAdapter",
    "RedisStringAdapter",
    "address",
]
