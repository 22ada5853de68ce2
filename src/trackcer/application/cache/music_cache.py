"""Process-wide cache for Genius producer lookups and dashboard stats."""

from typing import Any

from trackcer.application.cache.base_cache import InMemoryCache


class MusicCache:
    """Typed wrapper around one InMemoryCache.

    Hey future me - an empty producer list IS cached too ("Genius knows no producers
    for this track"), so get_genius_producers() returns None only on a miss.
    """

    GENIUS_PRODUCERS_TTL = 7 * 24 * 3600  # 7 days
    DASHBOARD_TODAY_TTL = 30
    DASHBOARD_TTL = 300

    def __init__(self) -> None:
        self._cache: InMemoryCache[str, Any] = InMemoryCache()

    @staticmethod
    def _make_genius_key(track_name: str, artist_name: str) -> str:
        return f"genius_producers_{track_name}_{artist_name}"

    @staticmethod
    def _make_dashboard_key(user_id: int, range_name: str) -> str:
        return f"dashboard_stats_{user_id}_{range_name}"

    async def get_genius_producers(
        self, track_name: str, artist_name: str
    ) -> list[dict[str, Any]] | None:
        return await self._cache.get(self._make_genius_key(track_name, artist_name))

    async def cache_genius_producers(
        self, track_name: str, artist_name: str, producers: list[dict[str, Any]]
    ) -> None:
        await self._cache.set(
            self._make_genius_key(track_name, artist_name),
            producers,
            self.GENIUS_PRODUCERS_TTL,
        )

    async def get_dashboard_stats(self, user_id: int, range_name: str) -> dict[str, Any] | None:
        return await self._cache.get(self._make_dashboard_key(user_id, range_name))

    async def cache_dashboard_stats(
        self, user_id: int, range_name: str, stats: dict[str, Any]
    ) -> None:
        ttl = self.DASHBOARD_TODAY_TTL if range_name == "today" else self.DASHBOARD_TTL
        await self._cache.set(self._make_dashboard_key(user_id, range_name), stats, ttl)

    async def purge_expired(self) -> int:
        return await self._cache.purge_expired()

    async def clear(self) -> None:
        await self._cache.clear()


_music_cache: MusicCache | None = None


def get_music_cache() -> MusicCache:
    """Get the singleton MusicCache shared by API handlers and the scheduler."""
    global _music_cache
    if _music_cache is None:
        _music_cache = MusicCache()
    return _music_cache
