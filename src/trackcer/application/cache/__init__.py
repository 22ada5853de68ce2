"""Caches."""

from .base_cache import CacheEntry, InMemoryCache
from .music_cache import MusicCache, get_music_cache

__all__ = ["CacheEntry", "InMemoryCache", "MusicCache", "get_music_cache"]
