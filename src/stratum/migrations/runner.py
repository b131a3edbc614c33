"""Migration runner for Stratum schema evolution.

This module provides the core migration functionality:
- Creating the ``_schema_migrations`` ledger table
- Tracking applied migrations per (module, version)
- Applying pending migrations module by module in version order
- Detecting edits to already-applied migrations via checksums
"""

from __future__ import annotations

import hashlib
import sqlite3
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import select, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from stratum.database import ensure_utc, install_transactional_ddl, schema_migrations
from stratum.errors import ChecksumMismatchError, DatabaseError, MigrationError
from stratum.logging import get_logger
from stratum.migrations.migration import Migration, migration_id

if TYPE_CHECKING:
    from stratum.config import Config

log = get_logger("migrations")

# Fixed advisory lock key shared by every runner pointed at the same database
_LOCK_KEY = int(hashlib.sha256(b"_schema_migrations").hexdigest()[:15], 16)


class AppliedMigration(BaseModel):
    """A ledger row: one migration that has been applied."""

    model_config = ConfigDict(from_attributes=True)

    module: str
    version: int
    name: str
    checksum: str
    applied_at: datetime | None = None
    execution_time_ms: int | None = None

    @field_validator("applied_at")
    @classmethod
    def validate_applied_at(cls, v: datetime | None) -> datetime | None:
        """Normalize naive timestamps read back from SQLite to UTC."""
        return ensure_utc(v)

    @property
    def id(self) -> str:
        """Display identifier matching ``Migration.id``."""
        return migration_id(self.module, self.version)

    @property
    def applied_at_display(self) -> str:
        """Applied timestamp formatted for operators."""
        if self.applied_at is None:
            return "unknown"
        return self.applied_at.strftime("%Y-%m-%d %H:%M:%S")


@dataclass
class MigrationResult:
    """Outcome of a ``MigrationRunner.run`` call."""

    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.applied)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def plan_by_module(migrations: Iterable[Migration]) -> dict[str, list[Migration]]:
    """Group descriptors by module, each group in ascending version order.

    Modules keep the order in which they first appear in the input.

    Args:
        migrations: Descriptors from all modules, in any order.

    Returns:
        Mapping of module name to its migrations sorted by version.
    """
    grouped: dict[str, list[Migration]] = {}
    for migration in migrations:
        grouped.setdefault(migration.module, []).append(migration)
    return {
        module: sorted(items, key=lambda m: m.version)
        for module, items in grouped.items()
    }


def split_sql_statements(sql: str) -> list[str]:
    """Split a SQLite script into individually executable statements.

    Semicolons inside string literals and trigger bodies do not end a
    statement; ``sqlite3.complete_statement`` decides where one ends.

    Args:
        sql: Script text with one or more statements.

    Returns:
        Statements in script order, without empty fragments.
    """
    statements: list[str] = []
    buffer = ""
    fragments = sql.split(";")

    for i, fragment in enumerate(fragments):
        buffer += fragment
        if i < len(fragments) - 1:
            buffer += ";"
        if sqlite3.complete_statement(buffer):
            if buffer.strip() not in ("", ";"):
                statements.append(buffer.strip())
            buffer = ""

    if buffer.strip():
        statements.append(buffer.strip())

    return statements


def _store_error(exc: SQLAlchemyError) -> str:
    """Extract the driver's error text from a SQLAlchemy exception."""
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig).strip()
    return str(exc)


class MigrationRunner:
    """Applies code-first migrations and records them in the ledger.

    Each ``run`` re-reads the ledger; nothing is cached between calls.
    Migrations execute one at a time and the first failure aborts the run,
    leaving the failed migration pending for the next attempt.

    Example::

        runner = MigrationRunner(get_engine(config))
        result = runner.run(collect_migrations(config))
        print(f"Applied {result.applied_count}, skipped {result.skipped_count}")
    """

    def __init__(
        self,
        engine: Engine,
        *,
        verify_checksums: bool = True,
        atomic: bool = True,
        lock: bool = True,
    ) -> None:
        """Initialize the runner.

        Args:
            engine: SQLAlchemy engine of the database being migrated.
            verify_checksums: Fail when an applied migration's SQL changed.
            atomic: Run each migration's SQL and its ledger insert in one
                transaction. When False they commit separately, and a crash
                in between leaves an applied but unrecorded migration.
                On SQLite the runner installs the transactional DDL hook
                on the engine if it is missing.
            lock: Hold a database advisory lock for the duration of ``run``
                where the dialect supports one (PostgreSQL).
        """
        self.engine = engine
        self.verify_checksums = verify_checksums
        self.atomic = atomic
        self.lock = lock

        if engine.dialect.name == "sqlite" and install_transactional_ddl(engine):
            log.debug("sqlite_transactional_ddl_installed", url=str(engine.url))

    @classmethod
    def from_config(cls, engine: Engine, config: Config) -> "MigrationRunner":
        """Build a runner using the ``migrations`` section of the config."""
        return cls(
            engine,
            verify_checksums=config.migrations.verify_checksums,
            atomic=config.migrations.atomic,
            lock=config.migrations.lock,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ensure_ledger_ready(self) -> None:
        """Create the ledger table and its indexes if they don't exist.

        Raises:
            DatabaseError: If the store rejects the DDL.
        """
        try:
            with self.engine.begin() as conn:
                schema_migrations.create(conn, checkfirst=True)
                for index in schema_migrations.indexes:
                    index.create(conn, checkfirst=True)
        except SQLAlchemyError as e:
            error = _store_error(e)
            log.error("ledger_create_failed", error=error)
            raise DatabaseError(f"Failed to create migrations table: {error}") from e

        log.debug("ledger_ready", table=schema_migrations.name)

    def run(self, migrations: Iterable[Migration]) -> MigrationResult:
        """Apply every migration not yet recorded in the ledger.

        Args:
            migrations: Descriptors from all modules, in any order.

        Returns:
            Identifiers of applied and skipped migrations.

        Raises:
            MigrationError: If a migration's SQL or ledger insert fails.
            ChecksumMismatchError: If an applied migration was edited.
            DatabaseError: If the ledger cannot be created or read.
        """
        migrations = list(migrations)
        result = MigrationResult()

        with self._exclusive_lock():
            self.ensure_ledger_ready()
            applied = self._load_applied()

            log.info(
                "migration_check_started",
                previously_applied=len(applied),
                total=len(migrations),
            )

            for module, module_migrations in plan_by_module(migrations).items():
                log.info("migration_module", module=module, count=len(module_migrations))

                for migration in module_migrations:
                    record = applied.get(migration.key)
                    if record is not None:
                        self._verify_checksum(migration, record)
                        log.debug(
                            "migration_skipped",
                            id=migration.id,
                            name=migration.name,
                        )
                        result.skipped.append(migration.id)
                        continue

                    self._apply(migration)
                    result.applied.append(migration.id)

        if result.applied_count == 0:
            log.info("no_pending_migrations", skipped=result.skipped_count)
        else:
            log.info(
                "migrations_complete",
                applied=result.applied_count,
                skipped=result.skipped_count,
            )

        return result

    def pending(self, migrations: Iterable[Migration]) -> list[Migration]:
        """Return migrations not yet recorded, in execution order."""
        self.ensure_ledger_ready()
        applied = self._load_applied()
        return [
            migration
            for module_migrations in plan_by_module(migrations).values()
            for migration in module_migrations
            if migration.key not in applied
        ]

    def status(self) -> list[AppliedMigration]:
        """Return every ledger entry ordered by module, then version."""
        self.ensure_ledger_ready()
        return list(self._load_applied().values())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load_applied(self) -> dict[tuple[str, int], AppliedMigration]:
        """Read the whole ledger keyed by (module, version)."""
        query = select(schema_migrations).order_by(
            schema_migrations.c.module,
            schema_migrations.c.version,
        )
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(query).fetchall()
        except SQLAlchemyError as e:
            error = _store_error(e)
            log.error("ledger_read_failed", error=error)
            raise DatabaseError(f"Failed to fetch applied migrations: {error}") from e

        entries = [AppliedMigration.model_validate(row._mapping) for row in rows]
        return {(entry.module, entry.version): entry for entry in entries}

    def _verify_checksum(self, migration: Migration, record: AppliedMigration) -> None:
        if not self.verify_checksums or record.checksum == migration.checksum:
            return
        log.error(
            "migration_checksum_mismatch",
            id=migration.id,
            recorded=record.checksum,
            current=migration.checksum,
        )
        raise ChecksumMismatchError(migration.id, record.checksum, migration.checksum)

    def _apply(self, migration: Migration) -> None:
        """Execute one migration and record it in the ledger."""
        log.info("applying_migration", id=migration.id, name=migration.name)

        if self.atomic:
            with self.engine.begin() as conn:
                execution_time_ms = self._execute(conn, migration)
                self._record(conn, migration, execution_time_ms)
        else:
            with self.engine.begin() as conn:
                execution_time_ms = self._execute(conn, migration)
            with self.engine.begin() as conn:
                self._record(conn, migration, execution_time_ms)

        log.info(
            "migration_applied",
            id=migration.id,
            execution_time_ms=execution_time_ms,
        )

    def _execute(self, conn: Connection, migration: Migration) -> int:
        """Run the migration's SQL. Returns elapsed milliseconds."""
        if not migration.sql.strip():
            statements = []
        elif conn.dialect.name == "sqlite":
            statements = split_sql_statements(migration.sql)
        else:
            statements = [migration.sql]

        start = time.perf_counter()
        try:
            for statement in statements:
                # No parameters, so driver paramstyle markers such as % pass through
                conn.exec_driver_sql(statement, execution_options={"no_parameters": True})
        except SQLAlchemyError as e:
            error = _store_error(e)
            log.error("migration_failed", id=migration.id, error=error)
            raise MigrationError(migration.id, error) from e

        return int((time.perf_counter() - start) * 1000)

    def _record(self, conn: Connection, migration: Migration, execution_time_ms: int) -> None:
        """Insert the ledger row for an executed migration."""
        try:
            conn.execute(
                schema_migrations.insert().values(
                    module=migration.module,
                    version=migration.version,
                    name=migration.name,
                    checksum=migration.checksum,
                    execution_time_ms=execution_time_ms,
                )
            )
        except SQLAlchemyError as e:
            error = _store_error(e)
            log.error("migration_record_failed", id=migration.id, error=error)
            raise MigrationError(migration.id, f"could not record in ledger: {error}") from e

    @contextmanager
    def _exclusive_lock(self) -> Iterator[None]:
        """Hold the migration advisory lock while the block runs.

        Only PostgreSQL offers a session-level advisory lock. Elsewhere the
        runner proceeds unlocked and assumes a single concurrent invocation.
        """
        dialect = self.engine.dialect.name
        if not self.lock or dialect != "postgresql":
            if self.lock:
                log.debug("migration_lock_unavailable", dialect=dialect)
            yield
            return

        try:
            conn = self.engine.connect()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to acquire migration lock: {_store_error(e)}") from e

        try:
            try:
                conn.execute(text("SELECT pg_advisory_lock(:key)"), {"key": _LOCK_KEY})
                conn.commit()
            except SQLAlchemyError as e:
                raise DatabaseError(
                    f"Failed to acquire migration lock: {_store_error(e)}"
                ) from e

            log.info("migration_lock_acquired", key=_LOCK_KEY)
            try:
                yield
            finally:
                try:
                    conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": _LOCK_KEY})
                    conn.commit()
                    log.info("migration_lock_released", key=_LOCK_KEY)
                except SQLAlchemyError as e:
                    # Dropping the connection ends the session, which frees the lock
                    log.warning("migration_lock_release_failed", error=_store_error(e))
                    conn.invalidate()
        finally:
            conn.close()
