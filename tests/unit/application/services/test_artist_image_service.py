"""ArtistImageService: Genius first, Spotify fallback, batch bookkeeping."""

from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.application.services.artist_image_service import ArtistImageService
from trackcer.application.services.spotify_token_service import SpotifyTokenService
from trackcer.config.settings import GeniusSettings, Settings
from trackcer.domain.exceptions import ConfigurationError
from trackcer.infrastructure.persistence import ArtistImageRepository

from factories import create_play, create_user


def genius_hit(name: str, image_url: str | None = "https://genius.test/a.jpg") -> dict[str, Any]:
    return {
        "id": 7,
        "title": "Song",
        "primary_artist": {"id": 99, "name": name, "image_url": image_url},
    }


def build_service(
    session: AsyncSession,
    settings: Settings,
    hits: list[dict[str, Any]] | None = None,
    spotify_artists: list[dict[str, Any]] | None = None,
) -> tuple[ArtistImageService, AsyncMock, AsyncMock]:
    genius = AsyncMock()
    genius.settings = settings.genius
    genius.search.return_value = hits or []
    spotify = AsyncMock()
    spotify.search_artist.return_value = {"artists": {"items": spotify_artists or []}}
    service = ArtistImageService(session, genius, SpotifyTokenService(session, spotify, settings))
    return service, genius, spotify


class TestCacheArtistImage:
    async def test_exact_genius_match_is_stored(
        self, session: AsyncSession, settings: Settings
    ) -> None:
        service, genius, _ = build_service(
            session, settings, hits=[genius_hit("Someone Else"), genius_hit("Drake")]
        )

        url = await service.cache_artist_image("Drake")

        assert url == "https://genius.test/a.jpg"
        stored = await ArtistImageRepository(session).get_by_name("Drake")
        assert stored is not None
        assert stored.genius_artist_id == "99"
        genius.search.assert_awaited_once_with("Drake")

    async def test_stored_image_short_circuits(
        self, session: AsyncSession, settings: Settings
    ) -> None:
        await ArtistImageRepository(session).upsert("Drake", "https://img.test/old.jpg")
        service, genius, _ = build_service(session, settings, hits=[genius_hit("Drake")])

        assert await service.cache_artist_image("Drake") == "https://img.test/old.jpg"
        genius.search.assert_not_awaited()

    async def test_force_refreshes_stored_image(
        self, session: AsyncSession, settings: Settings
    ) -> None:
        await ArtistImageRepository(session).upsert("Drake", "https://img.test/old.jpg")
        service, _, _ = build_service(session, settings, hits=[genius_hit("Drake")])

        assert await service.cache_artist_image("Drake", force=True) == "https://genius.test/a.jpg"

    async def test_blank_name(self, session: AsyncSession, settings: Settings) -> None:
        service, genius, _ = build_service(session, settings)
        assert await service.cache_artist_image("   ") is None
        genius.search.assert_not_awaited()

    async def test_unrelated_genius_hit_is_rejected(
        self, session: AsyncSession, settings: Settings
    ) -> None:
        service, _, _ = build_service(session, settings, hits=[genius_hit("Taylor Swift")])

        assert await service.cache_artist_image("Drake") is None
        assert await ArtistImageRepository(session).get_by_name("Drake") is None

    async def test_genius_errors_are_skipped(
        self, session: AsyncSession, settings: Settings
    ) -> None:
        service, genius, _ = build_service(session, settings)
        genius.search.side_effect = httpx.ConnectError("down")

        assert await service.cache_artist_image("Drake") is None

    async def test_spotify_fallback_uses_catalogue_user(
        self, session: AsyncSession, settings: Settings
    ) -> None:
        await create_user(session, name="Catalogue", spotify_token="catalogue-token")
        service, _, spotify = build_service(
            session,
            settings,
            spotify_artists=[{"name": "Drake", "images": [{"url": "https://sp.test/drake.jpg"}]}],
        )

        assert await service.cache_artist_image("Drake") == "https://sp.test/drake.jpg"
        spotify.search_artist.assert_awaited_once_with("Drake", "catalogue-token", limit=1)

    async def test_spotify_fallback_needs_similar_name(
        self, session: AsyncSession, settings: Settings
    ) -> None:
        await create_user(session, name="Catalogue", spotify_token="catalogue-token")
        service, _, _ = build_service(
            session,
            settings,
            spotify_artists=[{"name": "Rihanna", "images": [{"url": "https://x"}]}],
        )

        assert await service.cache_artist_image("Drake") is None

    async def test_spotify_fallback_rejects_longer_name_containing_query(
        self, session: AsyncSession, settings: Settings
    ) -> None:
        await create_user(session, name="Catalogue", spotify_token="catalogue-token")
        service, _, _ = build_service(
            session,
            settings,
            spotify_artists=[
                {"name": "Drake Bell", "images": [{"url": "https://sp.test/bell.jpg"}]}
            ],
        )

        stats = await service.cache_images(["Drake"])

        assert stats == {"processed": 1, "cached": 0, "failed": 1, "skipped": 0}
        assert await ArtistImageRepository(session).get_by_name("Drake") is None

    async def test_spotify_fallback_accepts_case_only_difference(
        self, session: AsyncSession, settings: Settings
    ) -> None:
        await create_user(session, name="Catalogue", spotify_token="catalogue-token")
        service, _, _ = build_service(
            session,
            settings,
            spotify_artists=[{"name": "the weeknd", "images": [{"url": "https://sp.test/w.jpg"}]}],
        )

        assert await service.cache_artist_image("The Weeknd") == "https://sp.test/w.jpg"


class TestBatches:
    async def test_cache_images_counts(self, session: AsyncSession, settings: Settings) -> None:
        await ArtistImageRepository(session).upsert("Future", "https://img.test/future.jpg")
        service, genius, _ = build_service(session, settings)
        genius.search.side_effect = lambda term: [genius_hit("Drake")] if term == "Drake" else []

        stats = await service.cache_images(["Drake", "Future", "Nobody", "", "Drake"])

        assert stats == {"processed": 2, "cached": 1, "failed": 1, "skipped": 1}

    async def test_fetch_missing_images_requires_token(
        self, session: AsyncSession, settings: Settings
    ) -> None:
        no_token = settings.model_copy(update={"genius": GeniusSettings(token="")})
        service, _, _ = build_service(session, no_token)

        with pytest.raises(ConfigurationError):
            await service.fetch_missing_images()

    async def test_fetch_missing_images(self, session: AsyncSession, settings: Settings) -> None:
        user = await create_user(session)
        await create_play(session, user, artist_name="Drake, Nobody")
        service, genius, _ = build_service(session, settings)
        genius.search.side_effect = lambda term: [genius_hit("Drake")] if term == "Drake" else []

        result = await service.fetch_missing_images(limit=10)

        assert result["fetched"] == 1
        assert result["failed_artists"] == ["Nobody"]
        assert result["total_processed"] == 2

    async def test_fetch_missing_images_when_all_cached(
        self, session: AsyncSession, settings: Settings
    ) -> None:
        service, _, _ = build_service(session, settings)

        result = await service.fetch_missing_images()

        assert result == {
            "message": "All artists already have images",
            "fetched": 0,
            "total_artists": 0,
        }

    async def test_batch_images(self, session: AsyncSession, settings: Settings) -> None:
        await ArtistImageRepository(session).upsert("Future", "https://img.test/future.jpg")
        service, genius, _ = build_service(session, settings, hits=[genius_hit("Drake")])

        lookup_only = await service.batch_images(["Future", "Drake"])
        assert lookup_only["images"] == {"Future": "https://img.test/future.jpg"}
        assert lookup_only["missing_artists"] == ["Drake"]
        genius.search.assert_not_awaited()

        fetched = await service.batch_images(["Future", "Drake"], fetch_missing=True)
        assert fetched["images"]["Drake"] == "https://genius.test/a.jpg"
        assert fetched["cached_count"] == 1
        assert fetched["missing_count"] == 1


class TestStats:
    async def test_unique_names_are_split(self, session: AsyncSession, settings: Settings) -> None:
        user = await create_user(session)
        await create_play(session, user, track_name="A", artist_name="Drake feat. Future")
        await create_play(session, user, track_name="B", artist_name="Earth, Wind & Fire")
        await create_play(session, user, track_name="C", artist_name="Future")
        await ArtistImageRepository(session).upsert("Future", "https://img.test/future.jpg")
        service, _, _ = build_service(session, settings)

        assert await service.unique_artist_names() == ["Drake", "Earth, Wind & Fire", "Future"]
        assert await service.missing_artist_names() == ["Drake", "Earth, Wind & Fire"]
        assert await service.stats() == {
            "total_artists": 3,
            "cached_images": 1,
            "missing_images": 2,
            "coverage_percentage": 33.33,
        }

    async def test_empty_stats(self, session: AsyncSession, settings: Settings) -> None:
        service, _, _ = build_service(session, settings)
        assert (await service.stats())["coverage_percentage"] == 0.0
