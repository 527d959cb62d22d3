"""
SQLite database integration and simple migration system.

This module provides functions for obtaining a database connection
(``get_connection``) and applying migrations on application start
(``init_db``).  The three business tables keep the capitalised names
used by the front-end (``Account``, ``House``, ``Guest``).

The migration mechanism stores applied migration versions in the
``migrations`` table and executes new migrations in order.
"""

import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from .config import settings


def get_database_path() -> str:
    """Compute the path to the SQLite database file.

    If ``settings.database_url`` is an absolute path, use it directly.
    Otherwise resolve it relative to the project root.
    """
    db_url = settings.database_url
    if os.path.isabs(db_url):
        return db_url
    base_dir = Path(__file__).resolve().parent.parent.parent  # house_leads_api/
    return str((base_dir / db_url).resolve())


def get_connection() -> sqlite3.Connection:
    """Create and return a new SQLite connection.

    The connection uses a row factory to access columns by name.
    Timestamps are stored and returned as ISO strings; pydantic
    schemas parse them on the way out.
    """
    conn = sqlite3.connect(get_database_path())
    conn.row_factory = sqlite3.Row
    # Foreign keys are off by default in SQLite and must be enabled per connection.
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_cursor() -> Iterator[sqlite3.Cursor]:
    """Context manager that yields a cursor and closes the connection on exit."""
    conn = get_connection()
    try:
        yield conn.cursor()
        conn.commit()
    finally:
        conn.close()


def now_iso() -> str:
    """Current local time in the storage format (seconds precision)."""
    return datetime.now().isoformat(timespec="seconds")


def init_db() -> None:
    """Initialise the database and apply pending migrations.

    Creates the ``migrations`` table if it does not exist, checks the
    current schema version, and applies any new migrations defined in
    the ``migrations`` list.  If you add a new migration, append it
    with an incremented version number.
    """
    migrations: list[tuple[int, str]] = [
        # Migration 1: initial schema
        (
            1,
            """
            CREATE TABLE IF NOT EXISTS Account (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                full_name TEXT NOT NULL,
                phone_number TEXT NOT NULL UNIQUE,
                role TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS House (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                address TEXT NOT NULL,
                manager_id INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(manager_id) REFERENCES Account(id) ON DELETE SET NULL
            );

            CREATE TABLE IF NOT EXISTS Guest (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                marketer_id INTEGER,
                house_id INTEGER NOT NULL,
                guest_name TEXT NOT NULL,
                guest_phone_number TEXT NOT NULL,
                view_date TIMESTAMP,
                status TEXT NOT NULL DEFAULT 'new',
                admin_note TEXT,
                manager_note TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(marketer_id) REFERENCES Account(id) ON DELETE SET NULL,
                FOREIGN KEY(house_id) REFERENCES House(id)
            );
            """,
        ),
        # Migration 2: lookup indices used by the role filters and the duplicate-phone check
        (
            2,
            """
            CREATE INDEX IF NOT EXISTS idx_house_manager_id ON House(manager_id);
            CREATE INDEX IF NOT EXISTS idx_guest_marketer_id ON Guest(marketer_id);
            CREATE INDEX IF NOT EXISTS idx_guest_house_id ON Guest(house_id);
            CREATE INDEX IF NOT EXISTS idx_guest_phone ON Guest(guest_phone_number);
            """,
        ),
    ]

    with get_cursor() as cursor:
        cursor.execute(
            "CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)"
        )
        cursor.execute("SELECT MAX(version) as version FROM migrations")
        row = cursor.fetchone()
        current_version = row["version"] if row and row["version"] is not None else 0

        for version, sql in migrations:
            if version > current_version:
                cursor.executescript(sql)
                cursor.execute(
                    "INSERT INTO migrations (version) VALUES (?)", (version,)
                )
                current_version = version
