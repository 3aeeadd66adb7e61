"""Schema migration runner for issues-tracker.

Migrations are plain ``.sql`` files in ``issues_tracker/migrations/``, applied
in file-name order. Each applied file is recorded by name in the
``_migrations`` table so it never runs twice.

The migration runner:
  1. Enables foreign keys and creates ``_migrations`` if it does not exist
  2. Skips files already recorded as applied
  3. Records empty files as applied without executing them
  4. Runs every other file as one transaction together with its bookkeeping row
     (rollback on failure)

Usage, adding a new migration:
  1. Add ``NNN_short_description.sql`` with the next free number
  2. Use ``IF NOT EXISTS`` / ``IF EXISTS`` so the script is safe on partially
     migrated databases
  3. Add a test in tests/test_migrations.py
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_TRACKING_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS _migrations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
)"""


class MigrationError(Exception):
    """Raised when a migration file fails to apply."""

    def __init__(self, name: str, cause: Exception) -> None:
        self.name = name
        self.cause = cause
        super().__init__(f"Migration {name} failed: {cause}")


def list_migration_files(migrations_dir: Path = MIGRATIONS_DIR) -> list[Path]:
    """Return the ``.sql`` files in *migrations_dir* sorted by file name."""
    if not migrations_dir.is_dir():
        msg = f"Migrations directory not found: {migrations_dir}"
        raise FileNotFoundError(msg)
    return sorted((p for p in migrations_dir.iterdir() if p.suffix == ".sql" and p.is_file()), key=lambda p: p.name)


def get_applied_migrations(conn: sqlite3.Connection) -> set[str]:
    """Names recorded in ``_migrations`` (creates the table if needed)."""
    conn.execute(_TRACKING_TABLE_SQL)
    conn.commit()
    return {row[0] for row in conn.execute("SELECT name FROM _migrations").fetchall()}


def apply_pending_migrations(conn: sqlite3.Connection, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply every migration file not yet recorded in ``_migrations``.

    Args:
        conn: Open SQLite connection.
        migrations_dir: Directory holding the ``.sql`` files.

    Returns:
        Names of the migrations applied by this call, in order (empty when
        the database is already up to date).

    Raises:
        MigrationError: If a migration fails. That migration is rolled back;
            earlier ones in the same run stay applied.
    """
    conn.execute("PRAGMA foreign_keys = ON")
    applied_names = get_applied_migrations(conn)

    newly_applied: list[str] = []
    for path in list_migration_files(migrations_dir):
        name = path.name
        if name in applied_names:
            logger.debug("Already applied: %s", name)
            continue

        sql = path.read_text(encoding="utf-8").strip()
        if not sql:
            logger.info("Skipping empty migration: %s", name)
            conn.execute("INSERT INTO _migrations (name) VALUES (?)", (name,))
            conn.commit()
            newly_applied.append(name)
            continue

        logger.info("Running migration: %s", name)
        escaped = name.replace("'", "''")
        # executescript() commits any pending transaction first, so the
        # transaction boundaries live inside the script itself.
        script = f"BEGIN IMMEDIATE;\n{sql}\n;\nINSERT INTO _migrations (name) VALUES ('{escaped}');\nCOMMIT;"
        try:
            conn.executescript(script)
        except sqlite3.Error as exc:
            if conn.in_transaction:
                conn.rollback()
            raise MigrationError(name, exc) from exc
        newly_applied.append(name)

    if newly_applied:
        logger.info("Applied %d migration(s): %s", len(newly_applied), ", ".join(newly_applied))
    return newly_applied
