"""FastAPI application for the Stratum user service.

Routes delegate to services found on ``app.state``:
- ``config``: application configuration
- ``db``: SQLAlchemy engine, or None with the in-memory repository
- ``user_service``: the ``UserService`` used by the users routes
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from stratum import __version__
from stratum.api.errors import register_error_handlers
from stratum.api.health import router as health_router
from stratum.logging import get_logger
from stratum.users.api import router as users_router

if TYPE_CHECKING:
    from stratum.config import Config

log = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    log.info("api_starting")
    yield
    log.info("api_stopping")


def create_app(config: "Config") -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Application configuration.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="Stratum User API",
        description="Layered CRUD service for users.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.db = None

    # Allow all origins for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        log.info(
            "request_start",
            method=request.method,
            path=request.url.path,
        )
        response = await call_next(request)
        log.info(
            "request_complete",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
        )
        return response

    register_error_handlers(app)

    app.include_router(health_router)
    if config.modules.users_enabled:
        app.include_router(users_router)

    return app
