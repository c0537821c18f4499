"""
Data management package.
"""

from data.byte_cache import (
    ByteCache,
    CacheEntry,
    CacheStats,
    CacheRegistry,
    get_byte_cache,
    reset_byte_cache,
    clear_all_caches,
)

__all__ = [
    'ByteCache',
    'CacheEntry',
    'CacheStats',
    'CacheRegistry',
    'get_byte_cache',
    'reset_byte_cache',
    'clear_all_caches',
]
