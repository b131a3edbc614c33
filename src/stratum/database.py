"""Database schema and connection management for Stratum.

Uses SQLAlchemy Core (not ORM) for explicit SQL control. Application
tables are created by code-first migrations, not by ``metadata.create_all``;
the table objects here describe their shape for queries. The migration
ledger is the one table the runner creates itself.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    event,
    func,
)
from sqlalchemy.engine import Engine, make_url
from ulid import ULID

from stratum.config import Config

# Shared metadata for all tables
metadata = MetaData()


# =============================================================================
# Application Tables (created by migrations)
# =============================================================================

users = Table(
    "users",
    metadata,
    Column("id", String(26), primary_key=True),  # ULID
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("full_name", String(255), nullable=False),
    Column("age", Integer, nullable=True),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)


# =============================================================================
# Migration Ledger
# =============================================================================

schema_migrations = Table(
    "_schema_migrations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("module", String(100), nullable=False),
    Column("version", Integer, nullable=False),
    Column("name", String(255), nullable=False),
    Column("checksum", String(255), nullable=False),
    Column("applied_at", DateTime(timezone=True), server_default=func.now()),
    Column("execution_time_ms", Integer, nullable=True),
    UniqueConstraint("module", "version", name="uq_schema_migrations_module_version"),
    Index("idx_schema_migrations_module", "module"),
    Index("idx_schema_migrations_applied_at", "applied_at"),
)


# =============================================================================
# Helper Functions
# =============================================================================


def generate_id() -> str:
    """Generate a new ULID for entities."""
    return str(ULID())


def utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware (UTC).

    SQLite stores datetimes as naive. This helper adds UTC timezone info
    if the datetime is naive.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_explicitly(conn) -> None:
    # Driver-managed transactions off, so BEGIN below also covers DDL
    conn.connection.dbapi_connection.isolation_level = None
    conn.exec_driver_sql("BEGIN")


def install_transactional_ddl(engine: Engine) -> bool:
    """Make pysqlite transactions cover DDL statements.

    pysqlite only opens a transaction implicitly before DML, so a
    CREATE TABLE would commit on its own. Disabling the driver's
    transaction handling and emitting BEGIN ourselves puts DDL and the
    ledger insert that follows it in the same transaction. The hook acts
    at every transaction start, so connections already in the pool are
    covered too.

    Args:
        engine: A SQLite engine.

    Returns:
        True if the hook was installed now, False if it already was.
    """
    if event.contains(engine, "begin", _begin_explicitly):
        return False
    event.listen(engine, "begin", _begin_explicitly)
    return True


def get_engine(config: Config) -> Engine:
    """Create SQLAlchemy engine from config.

    Args:
        config: Application configuration.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = make_url(config.database.url)
    echo = config.database.echo or config.log_level == "DEBUG"

    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            # Ensure data directory exists
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, echo=echo)
        event.listen(engine, "connect", _enable_foreign_keys)
        install_transactional_ddl(engine)
        return engine

    return create_engine(
        url,
        echo=echo,
        pool_size=config.database.max_connections,
        pool_pre_ping=True,
    )
