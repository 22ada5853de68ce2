"""FastAPI application factory.

Run with `trackcer serve` or `uvicorn trackcer.main:app`.
"""

from fastapi import FastAPI

from trackcer import __version__
from trackcer.api.exception_handlers import register_exception_handlers
from trackcer.api.routers import api_router
from trackcer.config import Settings
from trackcer.infrastructure.lifecycle import lifespan
from trackcer.infrastructure.observability import RequestLoggingMiddleware


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the API application.

    Args:
        settings: Settings to run with. Tests pass their own, otherwise the lifespan
            falls back to get_settings().

    Returns:
        Configured FastAPI app (resources are created on startup)
    """
    app = FastAPI(
        title="TrackCer",
        description="Listening history aggregation and producer analytics",
        version=__version__,
        lifespan=lifespan,
    )
    if settings is not None:
        app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
