from __future__ import annotations

import sqlite3
from datetime import datetime, timezone


LATEST_VERSION = 1


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def ensure_migrations_table(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations(
          version INTEGER PRIMARY KEY,
          applied_at TEXT NOT NULL
        )
        """
    )


def current_version(conn: sqlite3.Connection) -> int:
    ensure_migrations_table(conn)
    row = conn.execute("SELECT MAX(version) AS v FROM schema_migrations").fetchone()
    if row is None:
        return 0
    v = row[0]
    return int(v) if v is not None else 0


def apply_migrations(conn: sqlite3.Connection) -> None:
    ensure_migrations_table(conn)
    v = current_version(conn)
    if v < 1:
        _migration_v1(conn)
        conn.execute(
            "INSERT INTO schema_migrations(version, applied_at) VALUES(?,?)",
            (1, _utc_iso()),
        )
        conn.commit()


def _migration_v1(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS snapshots(
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          symbol TEXT NOT NULL,
          key_kind TEXT NOT NULL,
          key_value TEXT NOT NULL,
          ticket TEXT,
          timestamp INTEGER NOT NULL,
          document_json TEXT NOT NULL,
          updated_at TEXT NOT NULL
        );
        CREATE UNIQUE INDEX IF NOT EXISTS ux_snapshots_key
          ON snapshots(symbol, key_kind, key_value);
        CREATE INDEX IF NOT EXISTS ix_snapshots_symbol_ts
          ON snapshots(symbol, timestamp DESC);

        CREATE TABLE IF NOT EXISTS ml_training(
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          created_at TEXT NOT NULL,
          training_count INTEGER NOT NULL,
          win_trades INTEGER NOT NULL,
          total_trades INTEGER NOT NULL,
          win_rate REAL NOT NULL,
          last_profit REAL NOT NULL,
          symbol TEXT,
          timestamp INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS ix_ml_training_count
          ON ml_training(training_count DESC);
        """
    )
