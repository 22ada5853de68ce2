"""Integration tests for the listening history endpoints."""

from collections.abc import Callable
from typing import Any

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.infrastructure.persistence import UserRepository

from factories import create_play, create_user

SYNC_BODY = {
    "tracks": [
        {
            "track_id": "am-1",
            "track_name": "Hello",
            "artist_name": "Adele",
            "album_name": "25",
            "played_at": "2026-10-01T08:30:00Z",
            "apple_music_id": "1051394215",
            "duration_ms": 295000,
        },
        {
            "track_id": "am-2",
            "track_name": "Halo",
            "artist_name": "Beyoncé",
            "album_name": "I Am... Sasha Fierce",
            "played_at": "2026-10-01T08:35:00Z",
        },
    ]
}


def test_empty_history(client: TestClient, user_headers: dict[str, str]) -> None:
    response = client.get("/api/listening-history", headers=user_headers)

    assert response.status_code == 200
    payload = response.json()
    assert payload["data"] == []
    assert payload["total"] == 0
    assert payload["last_page"] == 1


def test_sync_then_list(client: TestClient, user_headers: dict[str, str]) -> None:
    first = client.post("/api/listening-history/sync", headers=user_headers, json=SYNC_BODY)
    again = client.post("/api/listening-history/sync", headers=user_headers, json=SYNC_BODY)

    assert first.status_code == 200
    assert first.json() == {"message": "Listening history synced", "synced": 2, "skipped": 0}
    assert again.json()["skipped"] == 2

    listing = client.get("/api/listening-history", headers=user_headers).json()
    assert [row["track_name"] for row in listing["data"]] == ["Halo", "Hello"]
    assert listing["data"][1]["duration_ms"] == 295000
    assert all(row["source"] == "Apple Music" for row in listing["data"])


def test_sync_validates_tracks(client: TestClient, user_headers: dict[str, str]) -> None:
    body = {"tracks": [{"track_id": "x", "track_name": "No artist"}]}

    response = client.post("/api/listening-history/sync", headers=user_headers, json=body)

    assert response.status_code == 422


def test_pagination_params(
    client: TestClient, user_headers: dict[str, str], seed: Callable[..., Any]
) -> None:
    async def _seed(session: AsyncSession) -> None:
        user = await UserRepository(session).get(int(user_headers["X-User-Id"]))
        for index in range(3):
            await create_play(session, user, track_name=f"Track {index}")

    seed(_seed)
    response = client.get(
        "/api/listening-history", headers=user_headers, params={"page": 2, "per_page": 2}
    )

    payload = response.json()
    assert payload["current_page"] == 2
    assert payload["last_page"] == 2
    assert len(payload["data"]) == 1


def test_get_single_play_is_scoped_to_user(
    client: TestClient, user_headers: dict[str, str], seed: Callable[..., Any]
) -> None:
    async def _seed(session: AsyncSession) -> tuple[int, int]:
        user = await UserRepository(session).get(int(user_headers["X-User-Id"]))
        other = await create_user(session, name="Other")
        mine = await create_play(session, user, track_name="Mine", producers=["Tay Keith"])
        theirs = await create_play(session, other, track_name="Theirs")
        return mine.id, theirs.id

    mine_id, theirs_id = seed(_seed)

    mine = client.get(f"/api/listening-history/{mine_id}", headers=user_headers)
    assert mine.status_code == 200
    assert mine.json()["track_name"] == "Mine"
    assert mine.json()["producers"][0]["name"] == "Tay Keith"

    theirs = client.get(f"/api/listening-history/{theirs_id}", headers=user_headers)
    assert theirs.status_code == 404
