"""Composition of feature modules.

Each module exposes a pure ``get_migrations()`` accessor; this module
decides which modules are enabled and concatenates their migrations, and
wires repositories to the configured backend.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from stratum.migrations import Migration
from stratum.users import migrations as user_migrations
from stratum.users.repository import InMemoryUserRepository, SqlUserRepository, UserRepository

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from stratum.config import Config

MIGRATION_SOURCES: dict[str, Callable[[], tuple[Migration, ...]]] = {
    "users": user_migrations.get_migrations,
}


def enabled_modules(config: Config) -> list[str]:
    """Names of the modules switched on in the config."""
    enabled = {"users": config.modules.users_enabled}
    return [name for name in MIGRATION_SOURCES if enabled.get(name, False)]


def collect_migrations(config: Config) -> list[Migration]:
    """Concatenate the migrations of every enabled module."""
    migrations: list[Migration] = []
    for name in enabled_modules(config):
        migrations.extend(MIGRATION_SOURCES[name]())
    return migrations


def build_user_repository(config: Config, engine: Engine | None = None) -> UserRepository:
    """Create the user repository for the configured backend.

    Raises:
        ValueError: If the SQL backend is selected but no engine is given.
    """
    if config.uses_sql:
        if engine is None:
            raise ValueError("SQL repository requires a database engine")
        return SqlUserRepository(engine)
    return InMemoryUserRepository()
