"""
Result and source-payload caches with lazy TTL expiry.
"""
from .disk_cache import DiskCache, MemoryCache, NutritionCache, sanitize_key

__all__ = [
    "DiskCache",
    "MemoryCache",
    "NutritionCache",
    "sanitize_key",
]
