from researchlib.cache.resource_cache import (
    CacheEntry,
    CacheInvariantError,
    EntryState,
    ResourceCache,
    ResourceClass,
)

__all__ = [
    "CacheEntry",
    "CacheInvariantError",
    "EntryState",
    "ResourceCache",
    "ResourceClass",
]
