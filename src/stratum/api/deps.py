"""FastAPI dependency injection for Stratum API.

Provides access to shared resources via app.state.
"""

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from stratum.config import Config


def get_config(request: Request) -> "Config":
    """Get config from app state.

    Args:
        request: FastAPI request object.

    Returns:
        Application configuration.
    """
    return request.app.state.config


def get_db(request: Request) -> "Engine | None":
    """Get database engine from app state.

    Returns None when the in-memory repository is in use.
    """
    return getattr(request.app.state, "db", None)
