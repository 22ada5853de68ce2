"""Current user endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends

from trackcer.api.dependencies import CurrentUser, get_user_service
from trackcer.api.schemas import AppleMusicTokenRequest, MessageResponse
from trackcer.application.services import UserService
from trackcer.application.services.play_stats import isoformat
from trackcer.infrastructure.persistence.models import UserModel

router = APIRouter()


def _serialize_user(user: UserModel) -> dict[str, Any]:
    # Tokens stay server-side, the client only learns whether a service is connected.
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "profile_image": user.profile_image,
        "spotify_connected": bool(user.spotify_token),
        "apple_music_connected": bool(user.apple_music_token),
        "initial_data_fetched": user.initial_data_fetched,
        "last_login_at": isoformat(user.last_login_at),
        "created_at": isoformat(user.created_at),
    }


@router.get("")
async def get_user(user: CurrentUser) -> dict[str, Any]:
    return _serialize_user(user)


@router.post("/login")
async def record_login(
    user: CurrentUser,
    users: Annotated[UserService, Depends(get_user_service)],
) -> dict[str, Any]:
    """Called by the client after it signed the user in.

    The first call for a user starts the initial history and producer import.
    """
    dispatched = await users.on_user_login(user)
    return {"user": _serialize_user(user), "initial_import_dispatched": dispatched}


@router.put("/apple-music-token", response_model=MessageResponse)
async def update_apple_music_token(
    body: AppleMusicTokenRequest, user: CurrentUser
) -> MessageResponse:
    user.apple_music_token = body.apple_music_token
    return MessageResponse(message="Apple Music token updated successfully")
