"""Code-first database migrations for Stratum.

Migrations are forward-only SQL descriptors owned by modules. Each module
exposes an immutable tuple through a ``get_migrations()`` accessor:

    MIGRATIONS = (
        Migration("users", 1, "create_users_table", "CREATE TABLE ..."),
    )

    def get_migrations() -> tuple[Migration, ...]:
        return MIGRATIONS

Versions are unique within a module and define execution order there.
Applied migrations are recorded in the ``_schema_migrations`` ledger and
are never run again.
"""

from stratum.migrations.migration import Migration, migration_id
from stratum.migrations.runner import AppliedMigration, MigrationResult, MigrationRunner
from stratum.migrations.status import MigrationInfo, describe_migrations, group_by_module

__all__ = [
    "AppliedMigration",
    "Migration",
    "MigrationInfo",
    "MigrationResult",
    "MigrationRunner",
    "describe_migrations",
    "group_by_module",
    "migration_id",
]
