"""Liveness endpoint."""

from fastapi import APIRouter

from trackcer.api.schemas import HealthResponse
from trackcer.infrastructure.persistence.models import utc_now

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Report that the API process is up. No database round trip."""
    return HealthResponse(status="ok", timestamp=utc_now())
