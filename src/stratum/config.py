"""Configuration loading and validation for Stratum."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class DatabaseConfig(BaseModel):
    """Relational store configuration."""

    url: str = "sqlite:///data/stratum.db"
    max_connections: int = Field(10, ge=1)
    echo: bool = False


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = Field(3000, ge=1, le=65535)


class MigrationsConfig(BaseModel):
    """Migration runner behaviour."""

    verify_checksums: bool = True
    atomic: bool = True  # SQL and ledger insert in one transaction
    lock: bool = True


class ModulesConfig(BaseModel):
    """Feature modules that contribute routes and migrations."""

    users_enabled: bool = True


class Config(BaseModel):
    """Root configuration for Stratum."""

    log_level: str = "INFO"
    log_json: bool = True
    repository: str = "memory"

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    migrations: MigrationsConfig = Field(default_factory=MigrationsConfig)
    modules: ModulesConfig = Field(default_factory=ModulesConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log_level is valid."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, v: str) -> str:
        """Validate repository backend is one of the supported kinds."""
        allowed = {"memory", "sql"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"repository must be one of: {allowed}")
        return v_lower

    @property
    def uses_sql(self) -> bool:
        """Whether the relational repository backend is selected."""
        return self.repository == "sql"

    @classmethod
    def _apply_env(cls, raw: dict[str, Any]) -> dict[str, Any]:
        """Overlay environment variables onto raw config data."""
        database = dict(raw.get("database") or {})
        server = dict(raw.get("server") or {})

        if "DATABASE_URL" in os.environ:
            database["url"] = os.environ["DATABASE_URL"]
        if "DATABASE_MAX_CONNECTIONS" in os.environ:
            database["max_connections"] = os.environ["DATABASE_MAX_CONNECTIONS"]
        if "SERVER_HOST" in os.environ:
            server["host"] = os.environ["SERVER_HOST"]
        if "SERVER_PORT" in os.environ:
            server["port"] = os.environ["SERVER_PORT"]
        if "STRATUM_LOG_LEVEL" in os.environ:
            raw["log_level"] = os.environ["STRATUM_LOG_LEVEL"]
        if "STRATUM_LOG_JSON" in os.environ:
            raw["log_json"] = os.environ["STRATUM_LOG_JSON"].lower() == "true"
        if "USE_POSTGRES" in os.environ:
            use_sql = os.environ["USE_POSTGRES"].lower() == "true"
            raw["repository"] = "sql" if use_sql else "memory"

        if database:
            raw["database"] = database
        if server:
            raw["server"] = server
        return raw

    @classmethod
    def load(cls, config_path: Path | str = Path("config.yaml")) -> "Config":
        """Load configuration from YAML file with env var overlay.

        Args:
            config_path: Path to YAML configuration file.

        Returns:
            Validated Config instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValueError: If config is invalid.
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError(
                f"Configuration file must contain a mapping at the top level: {config_path}"
            )

        return cls.model_validate(cls._apply_env(yaml_config))

    @classmethod
    def load_or_default(cls, config_path: Path | str | None = None) -> "Config":
        """Load configuration, falling back to defaults if file not found.

        Environment overrides apply to the defaults as well.

        Args:
            config_path: Optional path to YAML configuration file.

        Returns:
            Config instance (from file or defaults).
        """
        if config_path is None:
            for path in [Path("config.yaml"), Path("config.yml")]:
                if path.exists():
                    return cls.load(path)
            return cls.model_validate(cls._apply_env({}))

        try:
            return cls.load(config_path)
        except FileNotFoundError:
            return cls.model_validate(cls._apply_env({}))
