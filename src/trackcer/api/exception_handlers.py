"""Turn exceptions into {"detail": ...} JSON responses.

Routers raise domain exceptions (or HTTPException for plain 400/404 cases) and never
build error responses by hand.
"""

import logging
from typing import Any

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from trackcer.domain.exceptions import (
    ConfigurationError,
    DomainException,
    EntityNotFoundException,
    TokenRefreshException,
    ValidationException,
)

logger = logging.getLogger(__name__)

DOMAIN_STATUS: dict[type[DomainException], int] = {
    EntityNotFoundException: status.HTTP_404_NOT_FOUND,
    ValidationException: status.HTTP_422_UNPROCESSABLE_ENTITY,
    TokenRefreshException: status.HTTP_401_UNAUTHORIZED,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: DomainException) -> int:
    """Status code of the closest mapped class in the exception's MRO, 500 otherwise."""
    for cls in type(exc).__mro__:
        if cls in DOMAIN_STATUS:
            return DOMAIN_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _jsonable(value: Any) -> Any:
    """Pydantic puts raw request bytes into errors, JSONResponse can't encode those."""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_jsonable(item) for item in value]
    return value


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    status_code = status_for(exc)
    logger.log(
        logging.ERROR if status_code >= 500 else logging.WARNING,
        "%s at %s: %s",
        type(exc).__name__,
        request.url.path,
        exc.message,
        extra={"path": request.url.path, "status_code": status_code},
    )
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = _jsonable(list(exc.errors()))
    logger.warning(
        "Invalid request at %s", request.url.path, extra={"path": request.url.path}
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": errors}
    )


# Hey future me - anything httpx raises that no service caught means Spotify, Apple Music,
# Genius or Discogs let us down mid-request. That's a 502, not our 500.
async def upstream_error_handler(request: Request, exc: httpx.HTTPError) -> JSONResponse:
    logger.error(
        "Upstream call failed at %s: %s",
        request.url.path,
        exc,
        extra={"path": request.url.path, "error_type": type(exc).__name__},
    )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": "Upstream music service request failed"},
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    logger.log(
        logging.ERROR if exc.status_code >= 500 else logging.INFO,
        "HTTP %d at %s: %s",
        exc.status_code,
        request.url.path,
        exc.detail,
        extra={"path": request.url.path, "status_code": exc.status_code},
    )
    return JSONResponse(
        status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(DomainException)(domain_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(httpx.HTTPError)(upstream_error_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
