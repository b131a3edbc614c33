"""Migration descriptors.

A descriptor is a plain immutable value: which module owns the change,
its version within that module, a label and the SQL to run verbatim.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass


def migration_id(module: str, version: int) -> str:
    """Display identifier for a (module, version) pair, e.g. ``users:version_1``."""
    return f"{module}:version_{version}"


@dataclass(frozen=True)
class Migration:
    """One forward-only schema change owned by a module.

    Attributes:
        module: Logical owner, e.g. ``"users"``.
        version: Position within the module, starting at 1.
        name: Human-readable label, not part of identity.
        sql: Statement(s) executed as-is.
    """

    module: str
    version: int
    name: str
    sql: str

    @property
    def id(self) -> str:
        """Display identifier, e.g. ``users:version_1``."""
        return migration_id(self.module, self.version)

    @property
    def key(self) -> tuple[str, int]:
        """Ledger identity of this migration."""
        return (self.module, self.version)

    @property
    def checksum(self) -> str:
        """SHA-256 hex digest of the SQL text."""
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()
