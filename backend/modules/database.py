"""
SQLite storage bootstrap: owns the database file, hands out short-lived
connections and creates the users / questions / history tables.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    username       TEXT NOT NULL UNIQUE,
    total_acertos  INTEGER NOT NULL DEFAULT 0 CHECK (total_acertos >= 0),
    total_erros    INTEGER NOT NULL DEFAULT 0 CHECK (total_erros >= 0),
    nivel          INTEGER NOT NULL DEFAULT 1 CHECK (nivel >= 1),
    created_at     INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS questions (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    topic           TEXT NOT NULL,
    text            TEXT NOT NULL UNIQUE,
    options         TEXT NOT NULL,
    correct_answer  INTEGER NOT NULL CHECK (correct_answer BETWEEN 0 AND 4),
    explanation     TEXT NOT NULL DEFAULT '',
    created_at      INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS history (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id        INTEGER NOT NULL REFERENCES users(id),
    topic          TEXT NOT NULL,
    correct        INTEGER NOT NULL,
    question_text  TEXT NOT NULL,
    user_answer    TEXT NOT NULL,
    created_at     INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_questions_topic
    ON questions(topic);

CREATE INDEX IF NOT EXISTS idx_history_user
    ON history(user_id, created_at);
"""


class Database:
    """Process-wide handle on the SQLite file. Every unit of work gets its own connection."""

    def __init__(self, path: str, busy_timeout_ms: int = 5000):
        self.path = path
        self.busy_timeout_ms = busy_timeout_ms

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=self.busy_timeout_ms / 1000)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction; commit on success, roll back on error."""
        conn = self._connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def create_tables(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)
            conn.commit()
        finally:
            conn.close()
        logger.info("[DB] Schema ready at %s", self.path)
