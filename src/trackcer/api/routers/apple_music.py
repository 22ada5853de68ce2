"""Apple Music developer token endpoint for the mobile client."""

from datetime import timedelta
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from trackcer.api.dependencies import CurrentUser, get_app_settings
from trackcer.config import Settings
from trackcer.infrastructure.integrations import generate_developer_token
from trackcer.infrastructure.persistence.models import utc_now

router = APIRouter()


@router.get("/developer-token")
async def developer_token(
    _user: CurrentUser,
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> dict[str, Any]:
    """A freshly signed ES256 developer token (MusicKit needs it before user auth).

    Misconfigured credentials surface as ConfigurationError (500).
    """
    issued_at = utc_now()
    ttl = timedelta(days=settings.apple_music.token_ttl_days)
    token = generate_developer_token(settings.apple_music, now=issued_at)
    return {
        "success": True,
        "data": {
            "token": token,
            "expires_in": int(ttl.total_seconds()),
            "expires_at": (issued_at + ttl).isoformat(),
            "token_type": "Bearer",
        },
    }
