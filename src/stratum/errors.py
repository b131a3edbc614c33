"""Exception types shared by the service, repository and migration layers."""

from __future__ import annotations


class StratumError(Exception):
    """Base class for all Stratum errors."""

    pass


class RepositoryError(StratumError):
    """Base class for repository and service failures."""

    pass


class NotFoundError(RepositoryError):
    """Raised when an entity does not exist."""

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(f"Entity with ID {entity_id} not found")


class AlreadyExistsError(RepositoryError):
    """Raised when inserting an entity whose ID is already taken."""

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(f"Entity with ID {entity_id} already exists")


class ValidationError(RepositoryError):
    """Raised when input violates a business rule."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Validation error: {message}")


class DatabaseError(RepositoryError):
    """Raised when the backing store rejects an operation."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Database error: {message}")


class MigrationError(DatabaseError):
    """Raised when a migration's SQL or its ledger record fails.

    Attributes:
        migration_id: Display identifier of the failing migration.
    """

    def __init__(self, migration_id: str, message: str) -> None:
        self.migration_id = migration_id
        super().__init__(f"Migration {migration_id} failed: {message}")


class ChecksumMismatchError(MigrationError):
    """Raised when an applied migration's SQL was edited afterwards.

    Attributes:
        expected: Checksum recorded in the ledger.
        actual: Checksum computed from the current SQL.
    """

    def __init__(self, migration_id: str, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            migration_id,
            f"checksum mismatch (recorded {expected}, current {actual}); "
            "applied migrations must not be edited",
        )
