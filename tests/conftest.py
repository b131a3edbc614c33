"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from stratum.config import Config, DatabaseConfig
from stratum.database import get_engine

_ENV_OVERRIDES = [
    "DATABASE_URL",
    "DATABASE_MAX_CONNECTIONS",
    "SERVER_HOST",
    "SERVER_PORT",
    "STRATUM_LOG_LEVEL",
    "STRATUM_LOG_JSON",
    "USE_POSTGRES",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's environment from leaking into config loading."""
    for name in _ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    """Create a test configuration with a temp SQLite database."""
    return Config(
        repository="sql",
        database=DatabaseConfig(url=f"sqlite:///{tmp_path / 'data' / 'test.db'}"),
    )


@pytest.fixture
def engine(test_config: Config):
    """Create a test database engine (no tables yet)."""
    eng = get_engine(test_config)
    yield eng
    eng.dispose()
