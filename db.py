"""
db.py
SQLite durable holder for the ledger: the whole state snapshot is written as one
JSON document per save (one connection + one commit = one logical operation).
"""

from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from loguru import logger

DB_FILE = Path(os.environ.get("CLUB_LEDGER_DB", Path(__file__).with_name("club.db")))

STATE_KEY = "current"


@contextmanager
def get_conn(db_file: Path | str | None = None):
    conn = sqlite3.connect(db_file or DB_FILE, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute(sql: str, params: tuple = (), db_file: Path | str | None = None) -> int:
    with get_conn(db_file) as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def fetch_one(sql: str, params: tuple = (), db_file: Path | str | None = None):
    with get_conn(db_file) as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def init_db(db_file: Path | str | None = None) -> None:
    execute(
        """
        CREATE TABLE IF NOT EXISTS app_state (
            key TEXT PRIMARY KEY,
            payload TEXT NOT NULL,
            saved_at TEXT NOT NULL
        )
        """,
        db_file=db_file,
    )


def save_state(snapshot: dict, db_file: Path | str | None = None) -> None:
    now = datetime.now().isoformat(timespec="seconds")
    execute(
        """
        INSERT INTO app_state(key, payload, saved_at) VALUES(?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET payload=excluded.payload, saved_at=excluded.saved_at
        """,
        (STATE_KEY, json.dumps(snapshot), now),
        db_file=db_file,
    )
    logger.debug(f"State saved ({len(snapshot.get('members', []))} members)")


def load_state(db_file: Path | str | None = None) -> dict | None:
    row = fetch_one("SELECT payload FROM app_state WHERE key = ?", (STATE_KEY,), db_file=db_file)
    if not row:
        return None
    return json.loads(row["payload"])


def last_saved_at(db_file: Path | str | None = None) -> str | None:
    row = fetch_one("SELECT saved_at FROM app_state WHERE key = ?", (STATE_KEY,), db_file=db_file)
    return str(row["saved_at"]) if row else None


def clear_state(db_file: Path | str | None = None) -> None:
    execute("DELETE FROM app_state WHERE key = ?", (STATE_KEY,), db_file=db_file)
