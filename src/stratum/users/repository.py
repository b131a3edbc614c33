"""User repositories.

``UserRepository`` is the abstraction the service depends on. Two backends
implement it: an in-memory map for demos and tests, and a SQLAlchemy Core
repository over the ``users`` table created by the users migrations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from sqlalchemy import delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from stratum.database import users, utcnow
from stratum.errors import AlreadyExistsError, DatabaseError, NotFoundError, ValidationError
from stratum.logging import get_logger
from stratum.users.models import CreateUserRequest, UpdateUserRequest, User

log = get_logger("users.repository")


class UserRepository(ABC):
    """Storage operations for users."""

    @abstractmethod
    async def find_by_id(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def find_all(self) -> list[User]: ...

    @abstractmethod
    async def save(self, user: User) -> User: ...

    @abstractmethod
    async def update(self, user_id: str, user: User) -> User: ...

    @abstractmethod
    async def delete(self, user_id: str) -> bool: ...

    @abstractmethod
    async def exists(self, user_id: str) -> bool: ...

    @abstractmethod
    async def count(self) -> int: ...

    @abstractmethod
    async def find_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    async def find_by_email(self, email: str) -> User | None: ...

    @abstractmethod
    async def find_by_age_range(self, min_age: int, max_age: int) -> list[User]: ...

    async def create_user(self, request: CreateUserRequest) -> User:
        """Build a new user from a create request and store it."""
        return await self.save(User(**request.model_dump()))

    async def update_user(self, user_id: str, request: UpdateUserRequest) -> User:
        """Apply the fields set on an update request to a stored user.

        Raises:
            NotFoundError: If no user has this ID.
        """
        user = await self.find_by_id(user_id)
        if user is None:
            raise NotFoundError(user_id)

        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        updated = user.model_copy(update={**changes, "updated_at": utcnow()})
        return await self.update(user_id, updated)


class InMemoryUserRepository(UserRepository):
    """Dict-backed repository. State lives only as long as the instance."""

    def __init__(self, initial: Iterable[User] | None = None) -> None:
        self._users: dict[str, User] = {}
        for user in initial or []:
            self._users[user.id] = user

    def _check_unique(self, user: User, exclude_id: str | None) -> None:
        for existing in self._users.values():
            if existing.id == exclude_id:
                continue
            if existing.username == user.username:
                raise ValidationError(f"Username '{user.username}' is already taken")
            if existing.email == user.email:
                raise ValidationError(f"Email '{user.email}' is already taken")

    async def find_by_id(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    async def find_all(self) -> list[User]:
        return list(self._users.values())

    async def save(self, user: User) -> User:
        if user.id in self._users:
            raise AlreadyExistsError(user.id)
        self._check_unique(user, exclude_id=None)
        self._users[user.id] = user
        return user

    async def update(self, user_id: str, user: User) -> User:
        if user_id not in self._users:
            raise NotFoundError(user_id)
        self._check_unique(user, exclude_id=user_id)
        self._users[user_id] = user
        return user

    async def delete(self, user_id: str) -> bool:
        return self._users.pop(user_id, None) is not None

    async def exists(self, user_id: str) -> bool:
        return user_id in self._users

    async def count(self) -> int:
        return len(self._users)

    async def find_by_username(self, username: str) -> User | None:
        return next((u for u in self._users.values() if u.username == username), None)

    async def find_by_email(self, email: str) -> User | None:
        return next((u for u in self._users.values() if u.email == email), None)

    async def find_by_age_range(self, min_age: int, max_age: int) -> list[User]:
        return [
            u
            for u in self._users.values()
            if u.age is not None and min_age <= u.age <= max_age
        ]


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Convert SQLAlchemy failures into repository errors."""
    try:
        yield
    except IntegrityError as e:
        log.warning("user_constraint_violation", operation=operation, error=str(e.orig))
        raise ValidationError(f"User violates a uniqueness constraint: {e.orig}") from e
    except SQLAlchemyError as e:
        log.error("user_query_failed", operation=operation, error=str(e))
        raise DatabaseError(f"Failed to {operation}: {e}") from e


class SqlUserRepository(UserRepository):
    """Repository over the ``users`` table using SQLAlchemy Core."""

    def __init__(self, engine: Engine) -> None:
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine of a migrated database.
        """
        self.engine = engine

    def _fetch_one(self, query) -> User | None:
        with _translate_errors("fetch user"):
            with self.engine.connect() as conn:
                row = conn.execute(query).first()
        return User.model_validate(row._mapping) if row else None

    def _fetch_all(self, query) -> list[User]:
        with _translate_errors("fetch users"):
            with self.engine.connect() as conn:
                rows = conn.execute(query).fetchall()
        return [User.model_validate(row._mapping) for row in rows]

    async def find_by_id(self, user_id: str) -> User | None:
        return self._fetch_one(select(users).where(users.c.id == user_id))

    async def find_all(self) -> list[User]:
        return self._fetch_all(select(users).order_by(users.c.created_at, users.c.id))

    async def save(self, user: User) -> User:
        with _translate_errors("insert user"):
            with self.engine.begin() as conn:
                conn.execute(users.insert().values(**user.model_dump()))
        log.debug("user_saved", user_id=user.id)
        return user

    async def update(self, user_id: str, user: User) -> User:
        values = user.model_dump(exclude={"id", "created_at"})
        with _translate_errors("update user"):
            with self.engine.begin() as conn:
                result = conn.execute(
                    users.update().where(users.c.id == user_id).values(**values)
                )
        if result.rowcount == 0:
            raise NotFoundError(user_id)
        return user

    async def delete(self, user_id: str) -> bool:
        with _translate_errors("delete user"):
            with self.engine.begin() as conn:
                result = conn.execute(delete(users).where(users.c.id == user_id))
        return result.rowcount > 0

    async def exists(self, user_id: str) -> bool:
        return await self.find_by_id(user_id) is not None

    async def count(self) -> int:
        with _translate_errors("count users"):
            with self.engine.connect() as conn:
                return conn.execute(select(func.count()).select_from(users)).scalar_one()

    async def find_by_username(self, username: str) -> User | None:
        return self._fetch_one(select(users).where(users.c.username == username))

    async def find_by_email(self, email: str) -> User | None:
        return self._fetch_one(select(users).where(users.c.email == email))

    async def find_by_age_range(self, min_age: int, max_age: int) -> list[User]:
        return self._fetch_all(
            select(users)
            .where(users.c.age.between(min_age, max_age))
            .order_by(users.c.age, users.c.id)
        )
