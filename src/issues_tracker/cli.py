"""CLI for the issues tracker.

Reads configuration from the environment (see ``issues_tracker.config``).

Usage:
    issues-tracker serve                          # REST API on HOST:PORT
    issues-tracker serve --port 8080 --no-migrate
    issues-tracker mcp                            # MCP adapter on MCP_PORT
    issues-tracker mcp --stdio                    # MCP adapter over stdio
    issues-tracker migrate                        # Apply pending migrations
    issues-tracker schema                         # Print the schema SQL
    issues-tracker create-api-key me@example.com  # Rotate an account's API key
"""

from __future__ import annotations

import json as json_mod
import sys
from datetime import timedelta
from pathlib import Path

import click

from issues_tracker import __version__
from issues_tracker.config import load_settings
from issues_tracker.core import TrackerDB


def _get_db(ctx: click.Context) -> TrackerDB:
    """Open the configured database and apply pending migrations."""
    from issues_tracker.migrations import MigrationError

    db = TrackerDB(ctx.obj["db_path"])
    try:
        db.initialize()
    except MigrationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    return db


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="issues-tracker")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="SQLite database file (default: $DATABASE_PATH or ./database.sqlite)",
)
@click.pass_context
def cli(ctx: click.Context, db_path: Path | None) -> None:
    """Issues tracker REST API, MCP adapter and maintenance commands."""
    ctx.ensure_object(dict)
    settings = load_settings()
    ctx.obj["settings"] = settings
    ctx.obj["db_path"] = db_path or settings.database_path


@cli.command()
@click.option("--host", default=None, help="Bind address (default: $HOST or 0.0.0.0)")
@click.option("--port", default=None, type=int, help="Port (default: $PORT or 3000)")
@click.option("--no-migrate", is_flag=True, help="Do not apply pending migrations on startup")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, no_migrate: bool) -> None:
    """Run the REST API server."""
    from issues_tracker.api import main as api_main

    api_main(host, port, migrate=not no_migrate, db_path=ctx.obj["db_path"])


@cli.command()
@click.option("--port", default=None, type=int, help="Port (default: $MCP_PORT or 4000)")
@click.option("--stdio", is_flag=True, help="Serve over stdio instead of streamable HTTP")
def mcp(port: int | None, stdio: bool) -> None:
    """Run the MCP adapter in front of the REST API."""
    from issues_tracker.mcp_server import main as mcp_main

    mcp_main(port, stdio=stdio)


@cli.command()
@click.pass_context
def migrate(ctx: click.Context) -> None:
    """Apply pending schema migrations."""
    from issues_tracker.migrations import MigrationError

    with TrackerDB(ctx.obj["db_path"]) as db:
        try:
            applied = db.initialize()
        except MigrationError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    if not applied:
        click.echo("Database is up to date")
        return
    for name in applied:
        click.echo(f"Applied {name}")
    click.echo(f"{len(applied)} migration(s) applied to {ctx.obj['db_path']}")


@cli.command()
@click.pass_context
def schema(ctx: click.Context) -> None:
    """Print every table's CREATE statement."""
    with _get_db(ctx) as db:
        click.echo(db.get_schema_sql())


@cli.command("create-api-key")
@click.argument("email")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create_api_key(ctx: click.Context, email: str, as_json: bool) -> None:
    """Replace every API key of the account EMAIL with a new one and print it."""
    from issues_tracker.auth import AuthService
    from issues_tracker.validation import sanitize_email

    clean_email, err = sanitize_email(email)
    if err:
        click.echo(f"Error: {err}", err=True)
        sys.exit(1)
    with _get_db(ctx) as db:
        found = db.get_auth_credentials(clean_email)
        if found is None:
            click.echo(f"Error: no account with email {clean_email}", err=True)
            sys.exit(1)
        user, _ = found
        auth = AuthService(db, session_ttl=timedelta(days=ctx.obj["settings"].session_ttl_days))
        issued = auth.rotate_api_key(user)

    if as_json:
        click.echo(json_mod.dumps(issued, indent=2))
        return
    click.echo(f"New API key for {clean_email} ({issued['name']}):")
    click.echo(issued["key"])
    click.echo("Store it now: it cannot be shown again.")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
