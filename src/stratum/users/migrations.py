"""Schema migrations owned by the users module.

The SQL sticks to types and statements that PostgreSQL and SQLite both
accept, so the same descriptors serve production and local databases.
"""

from stratum.migrations import Migration

MODULE = "users"

CREATE_USERS_TABLE = """
-- Create users table
CREATE TABLE IF NOT EXISTS users (
    id VARCHAR(26) PRIMARY KEY,
    username VARCHAR(255) NOT NULL UNIQUE,
    email VARCHAR(255) NOT NULL UNIQUE,
    full_name VARCHAR(255) NOT NULL,
    age INTEGER,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- Lookups by username and email
CREATE INDEX IF NOT EXISTS idx_users_username ON users(username);
CREATE INDEX IF NOT EXISTS idx_users_email ON users(email);
"""

ADD_USERS_AGE_INDEX = """
-- Age range filtering
CREATE INDEX IF NOT EXISTS idx_users_age ON users(age);
"""

MIGRATIONS: tuple[Migration, ...] = (
    Migration(MODULE, 1, "create_users_table", CREATE_USERS_TABLE),
    Migration(MODULE, 2, "add_users_age_index", ADD_USERS_AGE_INDEX),
)


def get_migrations() -> tuple[Migration, ...]:
    """Return the users module's migrations."""
    return MIGRATIONS
