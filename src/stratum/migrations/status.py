"""Read-side views over migrations for operational tooling.

``group_by_module`` shapes ledger entries returned by
``MigrationRunner.status`` for display. ``describe_migrations`` lists the
known descriptors without touching the database, so operators can review
ids and checksums before running anything.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel

from stratum.migrations.migration import Migration
from stratum.migrations.runner import AppliedMigration, plan_by_module

SQL_PREVIEW_LENGTH = 60


class MigrationInfo(BaseModel):
    """Listing entry for one known migration."""

    module: str
    version: int
    name: str
    id: str
    checksum: str
    sql_preview: str


def group_by_module(entries: Iterable[AppliedMigration]) -> dict[str, list[AppliedMigration]]:
    """Group ledger entries by module.

    Args:
        entries: Ledger entries in any order.

    Returns:
        Mapping sorted by module name; each list sorted by version.
    """
    grouped: dict[str, list[AppliedMigration]] = {}
    for entry in entries:
        grouped.setdefault(entry.module, []).append(entry)
    return {
        module: sorted(grouped[module], key=lambda e: e.version)
        for module in sorted(grouped)
    }


def sql_preview(sql: str, length: int = SQL_PREVIEW_LENGTH) -> str:
    """First non-blank line of the SQL, cut to ``length`` characters."""
    for line in sql.splitlines():
        stripped = line.strip()
        if stripped:
            return stripped[:length]
    return ""


def describe_migrations(migrations: Iterable[Migration]) -> dict[str, list[MigrationInfo]]:
    """List known migrations per module with their id and checksum.

    Args:
        migrations: Descriptors from all modules.

    Returns:
        Mapping of module name to listing entries in version order.
    """
    return {
        module: [
            MigrationInfo(
                module=m.module,
                version=m.version,
                name=m.name,
                id=m.id,
                checksum=m.checksum,
                sql_preview=sql_preview(m.sql),
            )
            for m in module_migrations
        ]
        for module, module_migrations in plan_by_module(migrations).items()
    }
