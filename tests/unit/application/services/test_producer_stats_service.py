"""ProducerStatsService listings and producer detail."""

from datetime import timedelta

import pytest

from trackcer.application.services.producer_stats_service import ProducerStatsService
from trackcer.domain.exceptions import EntityNotFoundException
from trackcer.infrastructure.persistence import Database
from trackcer.infrastructure.persistence.models import utc_now
from trackcer.infrastructure.persistence.repositories import (
    ArtistImageRepository,
    ProducerRepository,
)

from factories import create_play, create_user, get_producer


@pytest.fixture
async def seeded(db: Database) -> dict[str, int]:
    """Ids of two users and the producers on the first user's plays."""
    now = utc_now()
    async with db.session_scope() as session:
        user = await create_user(session, name="Listener")
        other = await create_user(session, name="Other")
        await create_play(
            session,
            user,
            track_name="Sicko Mode",
            artist_name="Travis Scott, Drake",
            played_at=now - timedelta(hours=1),
            producers=["Tay Keith", "Hit-Boy"],
            genres=["Hip-Hop", "Trap"],
        )
        await create_play(
            session,
            user,
            track_name="Goosebumps",
            artist_name="Travis Scott",
            played_at=now - timedelta(days=2),
            duration_ms=240000,
            producers=["Tay Keith"],
            genres=["Hip-Hop"],
        )
        await create_play(
            session, other, track_name="Elsewhere", producers=["Pharrell"]
        )
        tay = await get_producer(session, "Tay Keith")
        hit_boy = await get_producer(session, "Hit-Boy")
        await ProducerRepository(session).follow(user.id, tay.id)
        await ProducerRepository(session).follow(other.id, tay.id)
        await ProducerRepository(session).favourite(user.id, hit_boy.id)
        await ArtistImageRepository(session).upsert("Drake", "https://img.test/drake.jpg")
        return {"user": user.id, "other": other.id, "tay": tay.id, "hit_boy": hit_boy.id}


class TestListProducers:
    async def test_lists_only_producers_of_own_history(
        self, db: Database, seeded: dict[str, int]
    ) -> None:
        async with db.session_scope() as session:
            result = await ProducerStatsService(session).list_producers(seeded["user"])

        assert [row["name"] for row in result["data"]] == ["Hit-Boy", "Tay Keith"]
        assert result["total"] == 2
        assert result["current_page"] == 1
        assert result["last_page"] == 1

    async def test_full_fields(self, db: Database, seeded: dict[str, int]) -> None:
        async with db.session_scope() as session:
            result = await ProducerStatsService(session).list_producers(seeded["user"])

        hit_boy, tay = result["data"]
        assert tay == {
            "id": seeded["tay"],
            "name": "Tay Keith",
            "image_url": "https://img.test/Tay Keith.jpg",
            "total_tracks": 2,
            "total_minutes": 7,
            "is_following": True,
            "is_favorite": False,
            "followers_count": 2,
        }
        assert hit_boy["is_favorite"] is True
        assert hit_boy["followers_count"] == 0

    async def test_minimal_fields(self, db: Database, seeded: dict[str, int]) -> None:
        async with db.session_scope() as session:
            result = await ProducerStatsService(session).list_producers(
                seeded["user"], fields="minimal"
            )

        assert set(result["data"][0]) == {"id", "name", "image_url", "total_tracks"}

    async def test_search_and_pagination(self, db: Database, seeded: dict[str, int]) -> None:
        async with db.session_scope() as session:
            service = ProducerStatsService(session)
            searched = await service.list_producers(seeded["user"], search="TAY")
            second_page = await service.list_producers(seeded["user"], page=2, per_page=1)
            beyond = await service.list_producers(seeded["user"], page=5, per_page=1)

        assert [row["name"] for row in searched["data"]] == ["Tay Keith"]
        assert [row["name"] for row in second_page["data"]] == ["Tay Keith"]
        assert second_page["last_page"] == 2
        assert beyond["data"] == []
        assert beyond["total"] == 2

    async def test_per_page_is_clamped(self, db: Database, seeded: dict[str, int]) -> None:
        async with db.session_scope() as session:
            result = await ProducerStatsService(session).list_producers(
                seeded["user"], per_page=5000
            )

        assert result["per_page"] == 1000


class TestProducerDetail:
    async def test_stats_and_breakdowns(self, db: Database, seeded: dict[str, int]) -> None:
        async with db.session_scope() as session:
            detail = await ProducerStatsService(session).get_producer(
                seeded["user"], seeded["tay"]
            )

        assert detail["name"] == "Tay Keith"
        assert detail["is_following"] is True
        assert detail["followers_count"] == 2
        assert detail["stats"]["total_tracks"] == 2
        assert detail["stats"]["total_minutes"] == 7
        assert sum(m["track_count"] for m in detail["stats"]["monthly_breakdown"]) == 2
        assert detail["genre_breakdown"] == {"Hip-Hop": 2, "Trap": 1}
        assert [t["track_name"] for t in detail["recent_tracks"]] == ["Sicko Mode", "Goosebumps"]

    async def test_collaborators(self, db: Database, seeded: dict[str, int]) -> None:
        async with db.session_scope() as session:
            detail = await ProducerStatsService(session).get_producer(
                seeded["user"], seeded["tay"]
            )

        assert [(c["name"], c["track_count"]) for c in detail["collaborators"]] == [
            ("Hit-Boy", 1)
        ]
        artists = detail["artist_collaborators"]
        assert [(a["artist_name"], a["track_count"], a["total_minutes"]) for a in artists] == [
            ("Travis Scott", 2, 7),
            ("Drake", 1, 3),
        ]
        assert artists[1]["image_url"] == "https://img.test/drake.jpg"
        assert artists[0]["first_collaboration"] < artists[0]["last_collaboration"]

    async def test_producer_without_own_plays_has_empty_stats(
        self, db: Database, seeded: dict[str, int]
    ) -> None:
        async with db.session_scope() as session:
            pharrell = await get_producer(session, "Pharrell")
            detail = await ProducerStatsService(session).get_producer(seeded["user"], pharrell.id)

        assert detail["stats"]["total_tracks"] == 0
        assert detail["stats"]["first_listened"] is None
        assert detail["recent_tracks"] == []
        assert detail["collaborators"] == []

    async def test_unknown_producer(self, db: Database, seeded: dict[str, int]) -> None:
        async with db.session_scope() as session:
            with pytest.raises(EntityNotFoundException):
                await ProducerStatsService(session).get_producer(seeded["user"], 9999)


class TestTrackFilters:
    async def test_shared_tracks(self, db: Database, seeded: dict[str, int]) -> None:
        async with db.session_scope() as session:
            result = await ProducerStatsService(session).shared_tracks(
                seeded["user"], seeded["tay"], seeded["hit_boy"]
            )

        assert result["total"] == 1
        assert result["data"][0]["track_name"] == "Sicko Mode"

    async def test_artist_tracks_match_inside_credit(
        self, db: Database, seeded: dict[str, int]
    ) -> None:
        async with db.session_scope() as session:
            service = ProducerStatsService(session)
            drake = await service.artist_tracks(seeded["user"], seeded["tay"], "drake")
            travis = await service.artist_tracks(seeded["user"], seeded["tay"], "Travis Scott")

        assert [t["track_name"] for t in drake["data"]] == ["Sicko Mode"]
        assert travis["total"] == 2
