"""Small response models shared by several routers."""

from datetime import datetime

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Always 'ok' while the app serves requests")
    timestamp: datetime


class MessageResponse(BaseModel):
    """Plain acknowledgement, optionally with a job status."""

    message: str
    status: str | None = None


class AppleMusicTokenRequest(BaseModel):
    apple_music_token: str = Field(..., min_length=1, description="MusicKit user token")
