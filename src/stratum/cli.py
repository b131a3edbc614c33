"""Command-line interface for Stratum."""

import asyncio
from pathlib import Path

import click

from stratum import __version__
from stratum.config import Config
from stratum.errors import StratumError
from stratum.logging import get_logger, setup_logging

log = get_logger("cli")


@click.group()
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level (overrides config).",
)
@click.option(
    "--log-json/--no-log-json",
    default=None,
    help="Output logs as JSON or human-readable format (overrides config).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Path | None,
    log_level: str | None,
    log_json: bool | None,
) -> None:
    """Stratum - layered user service with code-first migrations."""
    ctx.ensure_object(dict)

    try:
        config = Config.load_or_default(config_file)
    except ValueError as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)

    ctx.obj["config"] = config
    ctx.obj["config_file"] = config_file

    # CLI overrides config
    effective_log_level = log_level or config.log_level
    effective_log_json = log_json if log_json is not None else config.log_json

    setup_logging(json_output=effective_log_json, level=effective_log_level)


@cli.command()
def version() -> None:
    """Print version information."""
    click.echo(f"stratum {__version__}")


@cli.command()
@click.option("--host", default=None, help="Host to bind (default: from config).")
@click.option("--port", default=None, type=int, help="Port to bind (default: from config).")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the HTTP API server.

    With the SQL repository, pending migrations are applied first.
    """
    import uvicorn

    from stratum.api import create_app
    from stratum.database import get_engine
    from stratum.migrations import MigrationRunner
    from stratum.modules import build_user_repository, collect_migrations
    from stratum.users import UserService

    config = ctx.obj["config"]
    bind_host = host or config.server.host
    bind_port = port or config.server.port

    engine = None
    try:
        if config.uses_sql:
            engine = get_engine(config)
            MigrationRunner.from_config(engine, config).run(collect_migrations(config))

        app = create_app(config)
        app.state.db = engine
        app.state.user_service = UserService(build_user_repository(config, engine))

        log.info(
            "serve_command_invoked",
            host=bind_host,
            port=bind_port,
            repository=config.repository,
        )
        uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")
    except StratumError as e:
        log.error("serve_failed", error=str(e))
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    finally:
        if engine is not None:
            engine.dispose()


@cli.command()
def demo() -> None:
    """Walk through the user service against the in-memory repository."""
    from stratum.users import InMemoryUserRepository, UserService
    from stratum.users.models import CreateUserRequest, UpdateUserRequest

    service = UserService(InMemoryUserRepository())

    async def run() -> None:
        click.echo("1. Creating users...")
        john = await service.create_user(
            CreateUserRequest(
                username="john_doe", email="john@example.com", full_name="John Doe", age=30
            )
        )
        await service.create_user(
            CreateUserRequest(
                username="jane_smith", email="jane@example.com", full_name="Jane Smith", age=25
            )
        )
        bob = await service.create_user(
            CreateUserRequest(
                username="bob_wilson", email="bob@example.com", full_name="Bob Wilson", age=35
            )
        )
        click.echo(f"   Created {await service.get_user_count()} users")

        click.echo("2. Creating a user with a duplicate username...")
        try:
            await service.create_user(
                CreateUserRequest(
                    username="john_doe",
                    email="different@example.com",
                    full_name="Different User",
                    age=40,
                )
            )
            click.echo("   Unexpected success!")
        except StratumError as e:
            click.echo(f"   Expected error: {e}")

        click.echo("3. Updating a user...")
        updated = await service.update_user(
            john.id,
            UpdateUserRequest(email="john.doe.updated@example.com", age=31),
        )
        click.echo(f"   Updated: {updated.full_name} - {updated.email}")

        click.echo("4. Finding users aged 25-32...")
        for user in await service.get_users_by_age_range(25, 32):
            click.echo(f"   - {user.full_name} (Age: {user.age})")

        stats = await service.get_statistics()
        click.echo("5. Statistics")
        click.echo(f"   Total users: {stats.total_users}")
        click.echo(f"   Users with age: {stats.users_with_age}")
        average = f"{stats.average_age:.1f}" if stats.average_age is not None else "N/A"
        click.echo(f"   Average age: {average}")

        click.echo("6. Deleting a user...")
        await service.delete_user(bob.id)
        click.echo(f"   Remaining users: {await service.get_user_count()}")

    asyncio.run(run())
    click.echo("Demo complete")


# =============================================================================
# Database Commands
# =============================================================================


@cli.group()
def db() -> None:
    """Database migration commands."""
    pass


@db.command(name="migrate")
@click.option(
    "--verify-checksums/--no-verify-checksums",
    default=None,
    help="Fail if an applied migration was edited (overrides config).",
)
@click.pass_context
def db_migrate(ctx: click.Context, verify_checksums: bool | None) -> None:
    """Apply pending database migrations."""
    from stratum.database import get_engine
    from stratum.migrations import MigrationRunner
    from stratum.modules import collect_migrations

    config = ctx.obj["config"]
    engine = get_engine(config)

    runner = MigrationRunner.from_config(engine, config)
    if verify_checksums is not None:
        runner.verify_checksums = verify_checksums

    try:
        result = runner.run(collect_migrations(config))
    except StratumError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    finally:
        engine.dispose()

    if result.applied_count:
        click.echo(f"Applied {result.applied_count} new migration(s)")
        for migration_id in result.applied:
            click.echo(f"  {migration_id}")
    else:
        click.echo("All migrations up to date")
    click.echo(f"Skipped {result.skipped_count} already applied migration(s)")


@db.command(name="status")
@click.pass_context
def db_status(ctx: click.Context) -> None:
    """Show applied migrations grouped by module."""
    from stratum.database import get_engine
    from stratum.migrations import MigrationRunner, group_by_module
    from stratum.modules import collect_migrations

    config = ctx.obj["config"]
    engine = get_engine(config)
    runner = MigrationRunner.from_config(engine, config)

    try:
        entries = runner.status()
        pending = runner.pending(collect_migrations(config))
    except StratumError as e:
        click.echo(f"Error fetching migration status: {e}", err=True)
        raise SystemExit(1)
    finally:
        engine.dispose()

    click.echo(f"Database: {engine.url.render_as_string(hide_password=True)}")

    if not entries:
        click.echo("No migrations have been applied yet.")
    else:
        click.echo(f"Applied migrations: {len(entries)}")
        for module, module_entries in group_by_module(entries).items():
            click.echo(f"Module: {module} ({len(module_entries)} applied)")
            for entry in module_entries:
                click.echo(
                    f"  v{entry.version} {entry.name} "
                    f"applied {entry.applied_at_display} "
                    f"in {entry.execution_time_ms}ms"
                )

    if pending:
        click.echo(f"Pending migrations: {len(pending)}")
        for migration in pending:
            click.echo(f"  {migration.id}: {migration.name}")
    else:
        click.echo("No pending migrations")


@db.command(name="list")
@click.pass_context
def db_list(ctx: click.Context) -> None:
    """List all known migrations without touching the database."""
    from stratum.migrations import describe_migrations
    from stratum.modules import collect_migrations

    config = ctx.obj["config"]
    listing = describe_migrations(collect_migrations(config))

    if not listing:
        click.echo("No migrations found.")
        return

    total = sum(len(infos) for infos in listing.values())
    click.echo(f"Found {total} migration(s)")
    for module, infos in listing.items():
        click.echo(f"Module: {module} ({len(infos)} defined)")
        for info in infos:
            click.echo(f"  Version: {info.version}")
            click.echo(f"    Name: {info.name}")
            click.echo(f"    ID: {info.id}")
            click.echo(f"    Checksum: {info.checksum}")
            click.echo(f"    SQL Preview: {info.sql_preview}...")


# =============================================================================
# Config Commands
# =============================================================================


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command(name="check")
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=True, path_type=Path),
    default="config.yaml",
    help="Path to configuration file.",
)
def config_check(config_file: Path) -> None:
    """Validate configuration file."""
    try:
        cfg = Config.load(config_file)
        click.echo(f"Configuration valid: {config_file}")
        click.echo(f"  Repository: {cfg.repository}")
        click.echo(f"  Database: {cfg.database.url}")
        click.echo(f"  Server: {cfg.server.host}:{cfg.server.port}")
        click.echo(f"  Log level: {cfg.log_level}")
        enabled = [
            name.removesuffix("_enabled")
            for name, on in cfg.modules.model_dump().items()
            if on
        ]
        click.echo(f"  Modules: {', '.join(enabled) if enabled else 'none'}")
    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    except ValueError as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)
