"""Domain exceptions.

The API maps each of these to one status code in api/exception_handlers.py. Services and
clients raise them, routers let them bubble.
"""

from typing import Any


class DomainException(Exception):
    """Base for everything TrackCer raises on purpose."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class EntityNotFoundException(DomainException):
    """A lookup by id found nothing, or found a row owned by someone else (404).

    The message reads "<EntityType> with id <id> not found", clients show it as-is.
    """

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Input that passed schema validation but makes no sense (422)."""


class TokenRefreshException(DomainException):
    """Spotify would not hand out a new access token (401).

    Hey future me - the history fetch refreshes the Spotify token exactly ONCE on a 401.
    If that refresh fails too, this bubbles out of the client and the job logs it and
    skips the user. reason says why, so the log tells a revoked grant ("invalid_grant")
    apart from a user who never connected ("missing_refresh_token").
    """

    def __init__(self, message: str, reason: str) -> None:
        super().__init__(message)
        self.reason = reason


class ConfigurationError(DomainException):
    """A credential or key TrackCer needs is missing or unusable (500)."""


__all__ = [
    "ConfigurationError",
    "DomainException",
    "EntityNotFoundException",
    "TokenRefreshException",
    "ValidationException",
]
