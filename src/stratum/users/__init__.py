"""Users module: entity, repositories, service, HTTP routes and migrations."""

from stratum.users.migrations import get_migrations
from stratum.users.repository import InMemoryUserRepository, SqlUserRepository, UserRepository
from stratum.users.service import UserService

__all__ = [
    "InMemoryUserRepository",
    "SqlUserRepository",
    "UserRepository",
    "UserService",
    "get_migrations",
]
