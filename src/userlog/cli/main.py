"""
userlog CLI

Command-line interface for the userlog service.

Usage:
    userlog init --db users.db
    userlog user create --name alice --password s3cr3t
    userlog user update --id 1 --name alice --password n3w
    userlog user list
    userlog events list --since 2025-01-15T00:00:00+00:00 --limit 50
    userlog events user --id 1
    userlog serve --port 5000 --metrics-port 9090
"""

import json
from datetime import datetime
from pathlib import Path
from typing import NoReturn, Optional

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from userlog.app import UserLog
from userlog.http_api import run_api_server
from userlog.kernel.errors import UserLogError
from userlog.kernel.logging import configure_logging
from userlog.kernel.metrics import start_metrics_server
from userlog.kernel.settings import Settings

app = typer.Typer(
    name="userlog",
    help="userlog - users with an append-only change log",
    add_completion=False,
)

user_app = typer.Typer(help="User management commands")
events_app = typer.Typer(help="Event log queries")

app.add_typer(user_app, name="user")
app.add_typer(events_app, name="events")

DbOption = Annotated[
    Optional[Path],
    typer.Option("--db", help="Database path (default: $USERLOG_DB_PATH or .userlog.db)"),
]


@app.callback()
def main(
    log_level: Annotated[
        str, typer.Option("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    ] = "WARNING",
    json_logs: Annotated[bool, typer.Option("--json-logs", help="JSON log lines")] = False,
) -> None:
    """Configure logging before any command runs"""
    configure_logging(json_output=json_logs, log_level=log_level)


def get_settings(db_path: Optional[Path] = None, **overrides: object) -> Settings:
    """Load settings from USERLOG_* variables, exiting on invalid values"""
    try:
        return Settings.from_env(db_path=db_path, **overrides)
    except ValidationError as e:
        typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(1)


def open_userlog(settings: Settings) -> UserLog:
    try:
        return UserLog(settings=settings)
    except UserLogError as e:
        fail(e)


def get_userlog(db_path: Optional[Path] = None) -> UserLog:
    """Open an existing database, or exit with a hint to run init"""
    settings = get_settings(db_path)
    if not settings.db_path.exists():
        typer.echo(f"Error: Database not found: {settings.db_path}", err=True)
        typer.echo(f"Run 'userlog init --db {settings.db_path}' to initialize", err=True)
        raise typer.Exit(1)
    return open_userlog(settings)


def fail(error: UserLogError) -> NoReturn:
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(1)


def parse_time(value: Optional[str], option: str = "--since") -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        typer.echo(f"Error: {option} must be an ISO-8601 timestamp, got {value!r}", err=True)
        raise typer.Exit(2)


# Initialization command


@app.command()
def init(db: DbOption = None) -> None:
    """Initialize a new userlog database"""
    settings = get_settings(db)
    if settings.db_path.exists():
        typer.echo(f"Error: Database already exists: {settings.db_path}", err=True)
        raise typer.Exit(1)

    open_userlog(settings)
    typer.echo(f"✓ Initialized userlog database: {settings.db_path}")


# User commands


@user_app.command("create")
def user_create(
    name: Annotated[str, typer.Option("--name", help="User name")],
    password: Annotated[str, typer.Option("--password", help="User password")],
    db: DbOption = None,
) -> None:
    """Create a new user"""
    log = get_userlog(db)
    try:
        user = log.create_user(name, password)
    except UserLogError as e:
        fail(e)

    typer.echo(f"✓ Created user: {user.id}")
    typer.echo(f"  Name: {user.name}")


@user_app.command("update")
def user_update(
    user_id: Annotated[int, typer.Option("--id", help="User ID")],
    name: Annotated[str, typer.Option("--name", help="New name")],
    password: Annotated[str, typer.Option("--password", help="New password")],
    expected_updated_at: Annotated[
        Optional[str],
        typer.Option(
            "--expected-updated-at",
            help="Only update if the user hasn't changed since this timestamp",
        ),
    ] = None,
    db: DbOption = None,
) -> None:
    """Update a user's name and password"""
    log = get_userlog(db)
    try:
        user = log.update_user(
            user_id, name, password, expected_updated_at=parse_time(expected_updated_at, "--expected-updated-at")
        )
    except UserLogError as e:
        fail(e)

    typer.echo(f"✓ Updated user: {user.id}")
    typer.echo(f"  Name: {user.name}")
    typer.echo(f"  Updated at: {user.updated_at.isoformat()}")


@user_app.command("show")
def user_show(
    user_id: Annotated[int, typer.Option("--id", help="User ID")],
    db: DbOption = None,
) -> None:
    """Show one user as JSON"""
    log = get_userlog(db)
    try:
        user = log.get_user(user_id)
    except UserLogError as e:
        fail(e)
    typer.echo(json.dumps(user.to_public_dict(), indent=2))


@user_app.command("list")
def user_list(db: DbOption = None) -> None:
    """List all users"""
    log = get_userlog(db)
    try:
        users = log.list_users()
    except UserLogError as e:
        fail(e)

    if not users:
        typer.echo("No users")
        return

    typer.echo(f"Users ({len(users)}):")
    for user in users:
        typer.echo(f"  {user.id}: {user.name} (updated {user.updated_at.isoformat()})")


# Event commands


@events_app.command("list")
def events_list(
    since: Annotated[
        Optional[str], typer.Option("--since", help="ISO-8601 cursor (default: 1 hour ago)")
    ] = None,
    limit: Annotated[Optional[int], typer.Option("--limit", help="Page size")] = None,
    db: DbOption = None,
) -> None:
    """List events across all users as JSON"""
    log = get_userlog(db)
    try:
        events = log.list_events(since=parse_time(since), limit=limit)
        typer.echo(json.dumps([log.describe_event(e) for e in events], indent=2))
    except UserLogError as e:
        fail(e)


@events_app.command("user")
def events_user(
    user_id: Annotated[int, typer.Option("--id", help="User ID")],
    since: Annotated[
        Optional[str], typer.Option("--since", help="ISO-8601 cursor (default: 1 hour ago)")
    ] = None,
    limit: Annotated[Optional[int], typer.Option("--limit", help="Page size")] = None,
    db: DbOption = None,
) -> None:
    """List one user's events as JSON"""
    log = get_userlog(db)
    try:
        events = log.list_user_events(user_id, since=parse_time(since), limit=limit)
        typer.echo(json.dumps([log.describe_event(e) for e in events], indent=2))
    except UserLogError as e:
        fail(e)


# Server command


@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option("--host", help="Bind address")] = None,
    port: Annotated[Optional[int], typer.Option("--port", help="HTTP port")] = None,
    metrics_port: Annotated[
        Optional[int], typer.Option("--metrics-port", help="Prometheus metrics port")
    ] = None,
    db: DbOption = None,
) -> None:
    """Run the HTTP API (and optionally the Prometheus endpoint)"""
    settings = get_settings(db, http_host=host, http_port=port, metrics_port=metrics_port)
    configure_logging(json_output=settings.json_logs, log_level=settings.log_level)

    log = open_userlog(settings)
    if settings.metrics_port is not None:
        start_metrics_server(settings.metrics_port)
        typer.echo(f"✓ Metrics on http://{settings.http_host}:{settings.metrics_port}/metrics")

    run_api_server(log, host=settings.http_host, port=settings.http_port)


if __name__ == "__main__":
    app()
