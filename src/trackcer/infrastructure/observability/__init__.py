"""Observability infrastructure for structured logging."""

from trackcer.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    job_correlation,
    set_correlation_id,
)
from trackcer.infrastructure.observability.middleware import RequestLoggingMiddleware

__all__ = [
    "RequestLoggingMiddleware",
    "configure_logging",
    "get_correlation_id",
    "job_correlation",
    "set_correlation_id",
]
