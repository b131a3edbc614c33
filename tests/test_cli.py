"""Tests for the CLI module.

Covers:
- CLI help and version output
- Database migration commands (migrate, status, list)
- The serve and demo commands
- Configuration validation and checking
- Error handling and user feedback
"""

from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from stratum import __version__
from stratum.cli import cli


@pytest.fixture
def sql_config_file(tmp_path: Path) -> Path:
    """Config file pointing at a temp SQLite database."""
    config = {
        "log_level": "WARNING",
        "log_json": False,
        "repository": "sql",
        "database": {"url": f"sqlite:///{tmp_path / 'data' / 'cli.db'}"},
    }
    config_path = tmp_path / "config.yaml"
    with open(config_path, "w") as f:
        yaml.dump(config, f)
    return config_path


@pytest.fixture
def broken_db_config_file(tmp_path: Path) -> Path:
    """Config file whose database path holds something that is not SQLite."""
    db_path = tmp_path / "garbage.db"
    db_path.write_text("this is not a database file " * 100)
    config_path = tmp_path / "broken.yaml"
    with open(config_path, "w") as f:
        yaml.dump({"repository": "sql", "database": {"url": f"sqlite:///{db_path}"}}, f)
    return config_path


class TestCliHelp:
    """Tests for help and basic command availability."""

    def test_cli_help(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Stratum - layered user service" in result.output
        assert "Database migration commands" in result.output
        assert "Configuration management commands" in result.output

    def test_db_group_help(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["db", "--help"])
        assert result.exit_code == 0
        assert "migrate" in result.output
        assert "status" in result.output
        assert "list" in result.output


class TestVersion:
    """Tests for version command."""

    def test_cli_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert f"stratum {__version__}" in result.output

    def test_version_with_global_options(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--log-level", "DEBUG", "--log-json", "version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_version_with_config_file_missing(self, cli_runner: CliRunner) -> None:
        """A missing config file falls back to defaults."""
        result = cli_runner.invoke(
            cli, ["--config-file", "/nonexistent/config.yaml", "version"]
        )
        assert result.exit_code == 0

    def test_invalid_config_file(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        config_path = tmp_path / "bad.yaml"
        config_path.write_text("log_level: VERBOSE\n")

        result = cli_runner.invoke(cli, ["-c", str(config_path), "version"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_non_mapping_config_file(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        config_path = tmp_path / "list.yaml"
        config_path.write_text("- log_level\n- repository\n")

        result = cli_runner.invoke(cli, ["-c", str(config_path), "version"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output
        assert "mapping" in result.output


# =============================================================================
# Database Commands
# =============================================================================


class TestDbMigrate:
    """Tests for db migrate."""

    def test_migrate_fresh_database(self, cli_runner: CliRunner, sql_config_file: Path) -> None:
        result = cli_runner.invoke(cli, ["-c", str(sql_config_file), "db", "migrate"])

        assert result.exit_code == 0, result.output
        assert "Applied 2 new migration(s)" in result.output
        assert "users:version_1" in result.output
        assert "users:version_2" in result.output
        assert "Skipped 0 already applied migration(s)" in result.output

    def test_migrate_is_idempotent(self, cli_runner: CliRunner, sql_config_file: Path) -> None:
        cli_runner.invoke(cli, ["-c", str(sql_config_file), "db", "migrate"])

        result = cli_runner.invoke(cli, ["-c", str(sql_config_file), "db", "migrate"])

        assert result.exit_code == 0
        assert "All migrations up to date" in result.output
        assert "Skipped 2 already applied migration(s)" in result.output

    def test_migrate_no_verify_checksums_flag(
        self, cli_runner: CliRunner, sql_config_file: Path
    ) -> None:
        result = cli_runner.invoke(
            cli, ["-c", str(sql_config_file), "db", "migrate", "--no-verify-checksums"]
        )
        assert result.exit_code == 0

    def test_migrate_broken_database(
        self, cli_runner: CliRunner, broken_db_config_file: Path
    ) -> None:
        result = cli_runner.invoke(cli, ["-c", str(broken_db_config_file), "db", "migrate"])

        assert result.exit_code == 1
        assert "Error:" in result.output


class TestDbStatus:
    """Tests for db status."""

    def test_status_fresh_database(self, cli_runner: CliRunner, sql_config_file: Path) -> None:
        result = cli_runner.invoke(cli, ["-c", str(sql_config_file), "db", "status"])

        assert result.exit_code == 0, result.output
        assert "Database: sqlite:///" in result.output
        assert "No migrations have been applied yet." in result.output
        assert "Pending migrations: 2" in result.output
        assert "users:version_1: create_users_table" in result.output

    def test_status_after_migrate(self, cli_runner: CliRunner, sql_config_file: Path) -> None:
        cli_runner.invoke(cli, ["-c", str(sql_config_file), "db", "migrate"])

        result = cli_runner.invoke(cli, ["-c", str(sql_config_file), "db", "status"])

        assert result.exit_code == 0
        assert "Applied migrations: 2" in result.output
        assert "Module: users (2 applied)" in result.output
        assert "v1 create_users_table applied" in result.output
        assert "v2 add_users_age_index applied" in result.output
        assert "No pending migrations" in result.output

    def test_status_broken_database(
        self, cli_runner: CliRunner, broken_db_config_file: Path
    ) -> None:
        result = cli_runner.invoke(cli, ["-c", str(broken_db_config_file), "db", "status"])

        assert result.exit_code == 1
        assert "Error fetching migration status" in result.output


class TestDbList:
    """Tests for db list."""

    def test_list(self, cli_runner: CliRunner, sql_config_file: Path) -> None:
        result = cli_runner.invoke(cli, ["-c", str(sql_config_file), "db", "list"])

        assert result.exit_code == 0
        assert "Found 2 migration(s)" in result.output
        assert "Module: users (2 defined)" in result.output
        assert "ID: users:version_1" in result.output
        assert "Name: add_users_age_index" in result.output
        assert "SQL Preview: -- Create users table..." in result.output
        assert "Checksum: " in result.output

    def test_list_does_not_touch_database(
        self, cli_runner: CliRunner, sql_config_file: Path, tmp_path: Path
    ) -> None:
        cli_runner.invoke(cli, ["-c", str(sql_config_file), "db", "list"])

        assert not (tmp_path / "data" / "cli.db").exists()

    def test_list_no_modules(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        config_path = tmp_path / "config.yaml"
        with open(config_path, "w") as f:
            yaml.dump({"modules": {"users_enabled": False}}, f)

        result = cli_runner.invoke(cli, ["-c", str(config_path), "db", "list"])

        assert result.exit_code == 0
        assert "No migrations found." in result.output


# =============================================================================
# Serve & Demo
# =============================================================================


class TestServe:
    """Tests for serve, with the HTTP server replaced."""

    def test_serve_migrates_and_wires_app(
        self,
        cli_runner: CliRunner,
        sql_config_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls = {}

        def fake_run(app, host, port, log_level):
            calls["app"] = app
            calls["host"] = host
            calls["port"] = port

        monkeypatch.setattr("uvicorn.run", fake_run)

        result = cli_runner.invoke(
            cli, ["-c", str(sql_config_file), "serve", "--host", "127.0.0.1", "--port", "8123"]
        )

        assert result.exit_code == 0, result.output
        assert calls["host"] == "127.0.0.1"
        assert calls["port"] == 8123
        app = calls["app"]
        assert app.state.db is not None
        assert app.state.user_service is not None

        status = cli_runner.invoke(cli, ["-c", str(sql_config_file), "db", "status"])
        assert "Applied migrations: 2" in status.output

    def test_serve_memory_uses_no_database(
        self, cli_runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls = {}
        monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: calls.update(app=app, **kwargs))
        monkeypatch.chdir(tmp_path)

        result = cli_runner.invoke(cli, ["serve"])

        assert result.exit_code == 0, result.output
        assert calls["app"].state.db is None
        assert calls["port"] == 3000

    def test_serve_broken_database(
        self,
        cli_runner: CliRunner,
        broken_db_config_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr("uvicorn.run", lambda *args, **kwargs: None)

        result = cli_runner.invoke(cli, ["-c", str(broken_db_config_file), "serve"])

        assert result.exit_code == 1
        assert "Error:" in result.output


class TestDemo:
    """Tests for the in-memory walkthrough."""

    def test_demo(
        self, cli_runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)

        result = cli_runner.invoke(cli, ["demo"])

        assert result.exit_code == 0, result.output
        assert "Created 3 users" in result.output
        assert "Expected error: Validation error: Username 'john_doe' is already taken" in (
            result.output
        )
        assert "Updated: John Doe - john.doe.updated@example.com" in result.output
        assert "Average age: 30.3" in result.output
        assert "Remaining users: 2" in result.output
        assert "Demo complete" in result.output


# =============================================================================
# Config Commands
# =============================================================================


class TestConfigCheck:
    """Tests for config check."""

    def test_config_check_valid(self, cli_runner: CliRunner, sql_config_file: Path) -> None:
        result = cli_runner.invoke(cli, ["config", "check", "-c", str(sql_config_file)])

        assert result.exit_code == 0
        assert "Configuration valid" in result.output
        assert "Repository: sql" in result.output
        assert "Log level: WARNING" in result.output
        assert "Modules: users" in result.output

    def test_config_check_invalid(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        config_path = tmp_path / "bad.yaml"
        config_path.write_text("repository: redis\n")

        result = cli_runner.invoke(cli, ["config", "check", "-c", str(config_path)])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_config_check_missing_file(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["config", "check", "-c", "/nonexistent/config.yaml"])

        assert result.exit_code != 0
