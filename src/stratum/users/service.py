"""Business rules for users, on top of a ``UserRepository``."""

from __future__ import annotations

from stratum.errors import NotFoundError, ValidationError
from stratum.logging import get_logger
from stratum.users.models import CreateUserRequest, UpdateUserRequest, User, UserStatistics
from stratum.users.repository import UserRepository

log = get_logger("users.service")


class UserService:
    """User operations with uniqueness and range checks.

    The service works against any ``UserRepository``; which backend is
    used is decided by the caller.
    """

    def __init__(self, repository: UserRepository) -> None:
        """Initialize the service.

        Args:
            repository: Storage backend for users.
        """
        self.repository = repository

    async def create_user(self, request: CreateUserRequest) -> User:
        """Create a user after checking username and email are free.

        Raises:
            ValidationError: If the username or email is already in use.
        """
        if await self.repository.find_by_username(request.username) is not None:
            raise ValidationError(f"Username '{request.username}' is already taken")
        if await self.repository.find_by_email(request.email) is not None:
            raise ValidationError(f"Email '{request.email}' is already registered")

        user = await self.repository.create_user(request)
        log.info("user_created", user_id=user.id, username=user.username)
        return user

    async def get_user(self, user_id: str) -> User:
        """Get a user by ID.

        Raises:
            NotFoundError: If no user has this ID.
        """
        user = await self.repository.find_by_id(user_id)
        if user is None:
            raise NotFoundError(user_id)
        return user

    async def get_all_users(self) -> list[User]:
        return await self.repository.find_all()

    async def update_user(self, user_id: str, request: UpdateUserRequest) -> User:
        """Update a user, re-checking uniqueness of a changed username or email.

        Raises:
            NotFoundError: If no user has this ID.
            ValidationError: If the new username or email is taken.
        """
        existing = await self.get_user(user_id)

        if request.username is not None and request.username != existing.username:
            if await self.repository.find_by_username(request.username) is not None:
                raise ValidationError(f"Username '{request.username}' is already taken")

        if request.email is not None and request.email != existing.email:
            if await self.repository.find_by_email(request.email) is not None:
                raise ValidationError(f"Email '{request.email}' is already registered")

        user = await self.repository.update_user(user_id, request)
        log.info("user_updated", user_id=user_id)
        return user

    async def delete_user(self, user_id: str) -> bool:
        """Delete a user.

        Raises:
            NotFoundError: If no user has this ID.
        """
        if not await self.repository.exists(user_id):
            raise NotFoundError(user_id)

        deleted = await self.repository.delete(user_id)
        log.info("user_deleted", user_id=user_id)
        return deleted

    async def find_by_username(self, username: str) -> User | None:
        return await self.repository.find_by_username(username)

    async def find_by_email(self, email: str) -> User | None:
        return await self.repository.find_by_email(email)

    async def get_users_by_age_range(self, min_age: int, max_age: int) -> list[User]:
        """Users whose age lies in the inclusive range.

        Raises:
            ValidationError: If ``min_age`` is greater than ``max_age``.
        """
        if min_age > max_age:
            raise ValidationError("Minimum age cannot be greater than maximum age")
        return await self.repository.find_by_age_range(min_age, max_age)

    async def get_user_count(self) -> int:
        return await self.repository.count()

    async def get_statistics(self) -> UserStatistics:
        """Count users and average the ages of those who gave one."""
        all_users = await self.repository.find_all()
        ages = [u.age for u in all_users if u.age is not None]

        return UserStatistics(
            total_users=len(all_users),
            users_with_age=len(ages),
            average_age=sum(ages) / len(ages) if ages else None,
        )
