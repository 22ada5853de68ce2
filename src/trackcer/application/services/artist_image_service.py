"""Artist image caching (Genius first, Spotify as fallback).

Hey future me - names reaching cache_artist_image() must already be SPLIT
("Drake, Future" is two artists, "Tyler, The Creator" is one). The artist_images
table is keyed by the single-artist name.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.domain.exceptions import ConfigurationError, DomainException
from trackcer.domain.value_objects.artist_names import (
    is_exact_match,
    is_reasonably_close,
    is_similar_artist,
    is_spotify_artist_match,
    search_variations,
    split_artist_names,
)
from trackcer.infrastructure.integrations.genius_client import GeniusClient
from trackcer.infrastructure.persistence.repositories import (
    ArtistImageRepository,
    ListeningHistoryRepository,
)

from .spotify_token_service import SpotifyTokenService

logger = logging.getLogger(__name__)

BATCH_FETCH_LIMIT = 10


def _primary_artist(hit: dict[str, Any]) -> dict[str, Any] | None:
    artist = hit.get("primary_artist")
    if artist and artist.get("name"):
        return artist
    return None


class ArtistImageService:
    """Find, store and report on artist images."""

    def __init__(
        self,
        session: AsyncSession,
        genius_client: GeniusClient,
        spotify_tokens: SpotifyTokenService,
    ) -> None:
        self.genius_client = genius_client
        self.spotify_tokens = spotify_tokens
        self.image_repo = ArtistImageRepository(session)
        self.history_repo = ListeningHistoryRepository(session)

    async def _find_on_genius(self, artist_name: str) -> tuple[str, str | None] | None:
        """Search Genius with each name variation.

        Per variation: exact primary-artist match, then a similar one, then the
        first hit if it's at least reasonably close.

        Returns:
            (image_url, genius_artist_id) or None
        """
        for term in search_variations(artist_name):
            try:
                hits = await self.genius_client.search(term)
            except httpx.HTTPError as e:
                logger.warning(
                    "Genius artist search failed",
                    extra={"artist": artist_name, "term": term, "error": str(e)},
                )
                continue

            artists = [a for a in (_primary_artist(hit) for hit in hits) if a]
            if not artists:
                continue

            candidate = next(
                (a for a in artists if is_exact_match(a["name"], artist_name)), None
            )
            if candidate is None:
                candidate = next(
                    (a for a in artists if is_similar_artist(a["name"], artist_name)), None
                )
            if candidate is None and is_reasonably_close(artists[0]["name"], artist_name):
                candidate = artists[0]
                logger.info(
                    "Using first Genius result for artist image",
                    extra={"searched": artist_name, "found": candidate["name"]},
                )

            if candidate is not None and candidate.get("image_url"):
                artist_id = candidate.get("id")
                return candidate["image_url"], str(artist_id) if artist_id is not None else None

        return None

    async def _find_on_spotify(self, artist_name: str) -> str | None:
        user = await self.spotify_tokens.catalogue_user()
        if user is None:
            return None

        client = self.spotify_tokens.spotify_client
        try:
            result = await self.spotify_tokens.call(
                user, lambda token: client.search_artist(artist_name, token, limit=1)
            )
        except (httpx.HTTPError, DomainException) as e:
            logger.warning(
                "Spotify artist search failed",
                extra={"artist": artist_name, "error": str(e)},
            )
            return None

        items = (result.get("artists") or {}).get("items") or []
        if not items:
            return None
        spotify_artist = items[0]
        if not is_spotify_artist_match(spotify_artist.get("name") or "", artist_name):
            return None
        images = spotify_artist.get("images") or []
        if not images:
            return None
        logger.info(
            "Found artist image on Spotify",
            extra={"artist": artist_name, "spotify_artist": spotify_artist.get("name")},
        )
        return images[0].get("url")

    async def cache_artist_image(self, artist_name: str, force: bool = False) -> str | None:
        """Find and store an image for one (already split) artist name.

        Args:
            artist_name: Single artist name
            force: Look the image up again even if one is stored

        Returns:
            The image URL (stored or newly found), None if nothing was found
        """
        artist_name = artist_name.strip()
        if not artist_name:
            return None

        if not force:
            existing = await self.image_repo.get_by_name(artist_name)
            if existing is not None:
                return existing.image_url

        genius_artist_id: str | None = None
        image_url: str | None = None
        found = await self._find_on_genius(artist_name)
        if found is not None:
            image_url, genius_artist_id = found
        else:
            image_url = await self._find_on_spotify(artist_name)

        if not image_url:
            logger.warning(
                "No artist image found on Genius or Spotify", extra={"artist": artist_name}
            )
            return None

        await self.image_repo.upsert(artist_name, image_url, genius_artist_id)
        logger.info("Cached artist image", extra={"artist": artist_name})
        return image_url

    async def cache_images(
        self,
        artist_names: Iterable[str],
        force: bool = False,
        delay_seconds: float = 0.0,
    ) -> dict[str, int]:
        """Cache images for a batch of single-artist names.

        Args:
            artist_names: Names to process (empties are ignored)
            force: Refresh names that already have an image
            delay_seconds: Pause between lookups

        Returns:
            Counts: processed, cached, failed, skipped
        """
        stats = {"processed": 0, "cached": 0, "failed": 0, "skipped": 0}
        existing = set() if force else await self.image_repo.cached_names()

        for name in dict.fromkeys(n.strip() for n in artist_names if n and n.strip()):
            if name in existing:
                stats["skipped"] += 1
                continue

            stats["processed"] += 1
            try:
                image_url = await self.cache_artist_image(name, force=force)
            except Exception as e:
                logger.warning(
                    "Failed to cache artist image",
                    extra={"artist": name, "error": str(e)},
                    exc_info=True,
                )
                image_url = None

            if image_url:
                stats["cached"] += 1
            else:
                stats["failed"] += 1

            if delay_seconds > 0:
                await asyncio.sleep(delay_seconds)

        logger.info("Artist image batch finished", extra=stats)
        return stats

    async def fetch_missing_images(self, limit: int = 10) -> dict[str, Any]:
        """Look up images for up to `limit` artists that have none yet.

        Raises:
            ConfigurationError: No Genius token configured
        """
        if not self.genius_client.settings.token:
            raise ConfigurationError("Genius API token is not configured")

        missing = await self.missing_artist_names(limit=max(0, limit))
        if not missing:
            return {"message": "All artists already have images", "fetched": 0, "total_artists": 0}

        fetched = 0
        failed: list[str] = []
        for name in missing:
            if await self.cache_artist_image(name):
                fetched += 1
            else:
                failed.append(name)

        return {
            "message": "Artist images fetched",
            "fetched": fetched,
            "failed": len(failed),
            "failed_artists": failed[:5],
            "total_processed": len(missing),
        }

    async def batch_images(
        self, artist_names: Iterable[str], fetch_missing: bool = False
    ) -> dict[str, Any]:
        """Stored images for a list of names, optionally fetching a few missing ones.

        At most BATCH_FETCH_LIMIT missing names are looked up per call so the mobile
        client can't turn one request into hundreds of Genius calls.
        """
        images = await self.get_image_urls(artist_names)
        missing = [name for name, url in images.items() if url is None]
        cached_count = len(images) - len(missing)

        if fetch_missing:
            for name in missing[:BATCH_FETCH_LIMIT]:
                images[name] = await self.cache_artist_image(name)

        return {
            "images": {name: url for name, url in images.items() if url is not None},
            "cached_count": cached_count,
            "missing_count": len(missing),
            "missing_artists": missing,
        }

    async def unique_artist_names(self) -> list[str]:
        """Every distinct single artist across all listening history, sorted."""
        names: set[str] = set()
        for credit in await self.history_repo.list_distinct_artist_credits():
            names.update(split_artist_names(credit))
        return sorted(names)

    async def missing_artist_names(self, limit: int | None = None) -> list[str]:
        """Distinct split artists that have no stored image yet."""
        cached = await self.image_repo.cached_names()
        missing = [name for name in await self.unique_artist_names() if name not in cached]
        return missing[:limit] if limit is not None else missing

    async def get_image_urls(self, artist_names: Iterable[str]) -> dict[str, str | None]:
        names = list(dict.fromkeys(artist_names))
        images = await self.image_repo.get_many(names)
        return {name: images[name].image_url if name in images else None for name in names}

    async def stats(self) -> dict[str, Any]:
        """Coverage of the image cache over all known artists."""
        total_artists = len(await self.unique_artist_names())
        cached_images = await self.image_repo.count()
        coverage = round(cached_images / total_artists * 100, 2) if total_artists else 0.0
        return {
            "total_artists": total_artists,
            "cached_images": cached_images,
            "missing_images": max(0, total_artists - cached_images),
            "coverage_percentage": coverage,
        }
