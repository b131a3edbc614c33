"""Tests for the user repositories.

The same behaviour is checked against the in-memory map and against the
SQL repository on a SQLite database migrated with the users migrations.
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from stratum.errors import AlreadyExistsError, DatabaseError, NotFoundError, ValidationError
from stratum.migrations import MigrationRunner
from stratum.users import InMemoryUserRepository, SqlUserRepository, get_migrations
from stratum.users.models import CreateUserRequest, UpdateUserRequest, User


@pytest.fixture(params=["memory", "sql"])
def repository(request, engine):
    """Each test runs once per backend."""
    if request.param == "memory":
        return InMemoryUserRepository()
    MigrationRunner(engine).run(get_migrations())
    return SqlUserRepository(engine)


def make_user(username: str, email: str, age: int | None = None) -> User:
    return User(username=username, email=email, full_name=username.title(), age=age)


# =============================================================================
# Shared Behaviour
# =============================================================================


class TestRepository:
    """Behaviour both backends share."""

    @pytest.mark.asyncio
    async def test_save_and_find_by_id(self, repository) -> None:
        user = make_user("alice", "alice@example.com", 29)

        await repository.save(user)
        found = await repository.find_by_id(user.id)

        assert found is not None
        assert found.id == user.id
        assert found.username == "alice"
        assert found.age == 29
        assert found.created_at.tzinfo is not None
        assert abs(found.created_at - user.created_at) < timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_find_missing(self, repository) -> None:
        assert await repository.find_by_id("missing") is None
        assert await repository.find_by_username("missing") is None
        assert await repository.find_by_email("missing@example.com") is None

    @pytest.mark.asyncio
    async def test_find_all_and_count(self, repository) -> None:
        await repository.save(make_user("alice", "alice@example.com"))
        await repository.save(make_user("bob", "bob@example.com"))

        assert {u.username for u in await repository.find_all()} == {"alice", "bob"}
        assert await repository.count() == 2

    @pytest.mark.asyncio
    async def test_find_by_username_and_email(self, repository) -> None:
        user = make_user("alice", "alice@example.com")
        await repository.save(user)

        assert (await repository.find_by_username("alice")).id == user.id
        assert (await repository.find_by_email("alice@example.com")).id == user.id

    @pytest.mark.asyncio
    async def test_duplicate_username_rejected(self, repository) -> None:
        await repository.save(make_user("alice", "alice@example.com"))

        with pytest.raises(ValidationError):
            await repository.save(make_user("alice", "other@example.com"))

        assert await repository.count() == 1

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, repository) -> None:
        await repository.save(make_user("alice", "alice@example.com"))

        with pytest.raises(ValidationError):
            await repository.save(make_user("other", "alice@example.com"))

    @pytest.mark.asyncio
    async def test_update(self, repository) -> None:
        user = make_user("alice", "alice@example.com", 29)
        await repository.save(user)

        changed = user.model_copy(update={"age": 30, "full_name": "Alice A."})
        await repository.update(user.id, changed)
        found = await repository.find_by_id(user.id)

        assert found.age == 30
        assert found.full_name == "Alice A."

    @pytest.mark.asyncio
    async def test_update_missing(self, repository) -> None:
        with pytest.raises(NotFoundError):
            await repository.update("missing", make_user("ghost", "ghost@example.com"))

    @pytest.mark.asyncio
    async def test_delete_and_exists(self, repository) -> None:
        user = make_user("alice", "alice@example.com")
        await repository.save(user)

        assert await repository.exists(user.id) is True
        assert await repository.delete(user.id) is True
        assert await repository.exists(user.id) is False
        assert await repository.delete(user.id) is False

    @pytest.mark.asyncio
    async def test_find_by_age_range(self, repository) -> None:
        await repository.save(make_user("young", "young@example.com", 18))
        await repository.save(make_user("middle", "middle@example.com", 40))
        await repository.save(make_user("old", "old@example.com", 70))
        await repository.save(make_user("unknown", "unknown@example.com"))

        found = await repository.find_by_age_range(18, 40)

        assert sorted(u.username for u in found) == ["middle", "young"]

    @pytest.mark.asyncio
    async def test_create_user_from_request(self, repository) -> None:
        user = await repository.create_user(
            CreateUserRequest(username="carol", email="carol@example.com", full_name="Carol C")
        )

        assert await repository.find_by_id(user.id) is not None

    @pytest.mark.asyncio
    async def test_update_user_from_request(self, repository) -> None:
        user = await repository.create_user(
            CreateUserRequest(
                username="carol", email="carol@example.com", full_name="Carol C", age=20
            )
        )

        updated = await repository.update_user(user.id, UpdateUserRequest(age=21))

        assert updated.age == 21
        assert updated.email == "carol@example.com"
        assert updated.updated_at >= user.updated_at
        assert (await repository.find_by_id(user.id)).age == 21

    @pytest.mark.asyncio
    async def test_update_user_from_request_missing(self, repository) -> None:
        with pytest.raises(NotFoundError):
            await repository.update_user("missing", UpdateUserRequest(age=21))


# =============================================================================
# Backend Specifics
# =============================================================================


class TestInMemoryRepository:
    """Behaviour specific to the in-memory backend."""

    @pytest.mark.asyncio
    async def test_initial_users(self) -> None:
        user = make_user("alice", "alice@example.com")
        repository = InMemoryUserRepository([user])

        assert await repository.find_by_id(user.id) == user

    @pytest.mark.asyncio
    async def test_save_existing_id(self) -> None:
        user = make_user("alice", "alice@example.com")
        repository = InMemoryUserRepository([user])

        with pytest.raises(AlreadyExistsError):
            await repository.save(user)

    @pytest.mark.asyncio
    async def test_instances_do_not_share_state(self) -> None:
        first = InMemoryUserRepository()
        second = InMemoryUserRepository()
        await first.save(make_user("alice", "alice@example.com"))

        assert await second.count() == 0


class TestSqlRepository:
    """Behaviour specific to the SQL backend."""

    @pytest.mark.asyncio
    async def test_unmigrated_database_raises_database_error(self, engine) -> None:
        repository = SqlUserRepository(engine)

        with pytest.raises(DatabaseError, match="no such table"):
            await repository.count()

    @pytest.mark.asyncio
    async def test_store_failure_raises_database_error(self, engine, monkeypatch) -> None:
        MigrationRunner(engine).run(get_migrations())
        repository = SqlUserRepository(engine)

        def fail(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(engine, "connect", fail)

        with pytest.raises(DatabaseError, match="database is locked"):
            await repository.find_all()

    @pytest.mark.asyncio
    async def test_find_all_ordered_by_creation(self, engine) -> None:
        MigrationRunner(engine).run(get_migrations())
        repository = SqlUserRepository(engine)
        first = make_user("first", "first@example.com")
        second = make_user("second", "second@example.com")
        second = second.model_copy(update={"created_at": first.created_at + timedelta(seconds=1)})

        await repository.save(second)
        await repository.save(first)

        assert [u.username for u in await repository.find_all()] == ["first", "second"]
