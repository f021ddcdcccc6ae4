"""SQLite storage for users, encounters, alert contacts and the audit trail.

The schema is an ordered list of migrations. Each one runs at most once
and is recorded in ``schema_version`` together with its description, so
an existing file picks up new tables on the next start.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import NamedTuple

logger = logging.getLogger(__name__)


class Migration(NamedTuple):
    version: int
    description: str
    ddl: str


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        1,
        "users, encounters and alert contacts",
        """
        CREATE TABLE IF NOT EXISTS users (
            id                  TEXT PRIMARY KEY,
            wallet_address      TEXT,
            subscription_status TEXT NOT NULL DEFAULT 'free',
            preferred_language  TEXT NOT NULL DEFAULT 'en',
            saved_state_laws    TEXT NOT NULL DEFAULT '[]',
            created_at          TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at          TEXT NOT NULL DEFAULT (datetime('now'))
        );

        -- location and summary hold Fernet tokens
        CREATE TABLE IF NOT EXISTS encounters (
            id            TEXT PRIMARY KEY,
            user_id       TEXT NOT NULL REFERENCES users(id),
            timestamp     TEXT NOT NULL,
            location_enc  TEXT NOT NULL,
            recording_url TEXT,
            summary_enc   TEXT,
            alert_sent    INTEGER NOT NULL DEFAULT 0,
            duration      INTEGER,
            status        TEXT NOT NULL DEFAULT 'active'
                          CHECK (status IN ('active', 'completed', 'cancelled')),
            created_at    TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at    TEXT NOT NULL DEFAULT (datetime('now'))
        );

        -- phone and email hold Fernet tokens
        CREATE TABLE IF NOT EXISTS alert_contacts (
            id           TEXT PRIMARY KEY,
            user_id      TEXT NOT NULL REFERENCES users(id),
            name         TEXT NOT NULL,
            phone_enc    TEXT,
            email_enc    TEXT,
            relationship TEXT NOT NULL DEFAULT '',
            created_at   TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at   TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_encounters_user ON encounters(user_id);
        CREATE INDEX IF NOT EXISTS idx_encounters_ts   ON encounters(timestamp);
        CREATE INDEX IF NOT EXISTS idx_contacts_user   ON alert_contacts(user_id);
        """,
    ),
    Migration(
        2,
        "audit log",
        """
        CREATE TABLE IF NOT EXISTS audit_log (
            id              TEXT PRIMARY KEY,
            timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
            action          TEXT NOT NULL,
            tool_name       TEXT,
            tool_input_hash TEXT,
            user_id         TEXT,
            encounter_id    TEXT,
            duration_ms     REAL,
            status          TEXT NOT NULL DEFAULT 'success',
            error_type      TEXT,
            metadata_json   TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
        CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
        CREATE INDEX IF NOT EXISTS idx_audit_tool      ON audit_log(tool_name);
        CREATE INDEX IF NOT EXISTS idx_audit_encounter ON audit_log(encounter_id);
        """,
    ),
)

SCHEMA_VERSION = MIGRATIONS[-1].version

_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER PRIMARY KEY,
    description TEXT NOT NULL,
    applied_at  TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


class DatabaseError(Exception):
    """Raised when the database is used before ``initialize()`` or after ``close()``."""


class RightsDatabase:
    """Owns the single SQLite connection shared by the repository and audit logger.

    ``":memory:"`` is used by the tests and when no encryption key is
    configured; everything is lost when the process exits.

    Usage::

        with RightsDatabase("~/.kyr/rights.db") as db:
            with db.transaction() as conn:
                conn.execute(...)
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def is_memory(self) -> bool:
        return self._db_path == ":memory:"

    @property
    def connection(self) -> sqlite3.Connection:
        """The open connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Open the connection and apply pending migrations. Idempotent."""
        if self._conn is not None:
            return

        if self.is_memory:
            target = ":memory:"
        else:
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_file)

        conn = sqlite3.connect(target, timeout=5.0)
        conn.row_factory = sqlite3.Row
        if not self.is_memory:
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        self._conn = conn

        applied = self._migrate()
        logger.info(
            "Rights database ready: %s (schema v%d, %d migration(s) applied)",
            self._db_path,
            self.get_schema_version(),
            applied,
        )

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back if the block raises."""
        conn = self.connection
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    def _migrate(self) -> int:
        conn = self.connection
        conn.executescript(_VERSION_TABLE)
        current = self.get_schema_version()
        pending = [m for m in MIGRATIONS if m.version > current]
        for migration in pending:
            # executescript commits first, so the version row goes in its own transaction.
            conn.executescript(migration.ddl)
            with self.transaction():
                conn.execute(
                    "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                    (migration.version, migration.description),
                )
            logger.info("Applied schema v%d: %s", migration.version, migration.description)
        return len(pending)

    def get_schema_version(self) -> int:
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    def applied_migrations(self) -> list[tuple[int, str]]:
        rows = self.connection.execute(
            "SELECT version, description FROM schema_version ORDER BY version"
        ).fetchall()
        return [(row["version"], row["description"]) for row in rows]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Rights database closed")

    def __enter__(self) -> RightsDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
