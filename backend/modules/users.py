"""
Users & Progress: player records, cumulative score counters, derived level
and the per-answer history log.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from modules.database import Database

logger = logging.getLogger(__name__)


class UserNotFound(LookupError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


@dataclass
class User:
    id: int
    username: str
    total_acertos: int = 0
    total_erros: int = 0
    nivel: int = 1

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "total_acertos": self.total_acertos,
            "total_erros": self.total_erros,
            "nivel": self.nivel,
        }


@dataclass
class Progress:
    total_correct: int
    total_incorrect: int
    level: int


def level_for(total_correct: int, step: int = 10) -> int:
    return total_correct // step + 1


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        total_acertos=row["total_acertos"],
        total_erros=row["total_erros"],
        nivel=row["nivel"],
    )


class UserStore:
    def __init__(self, db: Database, level_step: int = 10):
        self._db = db
        self.level_step = level_step

    def find_or_create(self, username: str) -> tuple[User, bool]:
        """Look a player up by display name, creating it on first login."""
        name = (username or "").strip()
        if not name:
            raise ValueError("username must not be empty")
        with self._db.connection() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO users (username, created_at) VALUES (?, ?)",
                (name, int(time.time())),
            )
            created = cursor.rowcount == 1
            row = conn.execute("SELECT * FROM users WHERE username=?", (name,)).fetchone()
        if created:
            logger.info("[USERS] New player %r (id=%s)", name, row["id"])
        return _row_to_user(row), created

    def get(self, user_id: int) -> Optional[User]:
        with self._db.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id=?", (user_id,)).fetchone()
        return _row_to_user(row) if row else None

    def apply_result(self, user_id: Optional[int], correct: int, incorrect: int) -> Optional[Progress]:
        """
        Add a finished session's tally to the player's counters.

        Guests (`user_id is None`) are a no-op and get None back. The increment
        and the level recomputation happen in one UPDATE, so two submissions
        racing on the same player both land.
        """
        if correct < 0 or incorrect < 0:
            raise ValueError("score deltas must be non-negative")
        if user_id is None:
            return None

        with self._db.connection() as conn:
            cursor = conn.execute(
                "UPDATE users SET "
                "total_acertos = total_acertos + ?, "
                "total_erros = total_erros + ?, "
                "nivel = (total_acertos + ?) / ? + 1 "
                "WHERE id=?",
                (correct, incorrect, correct, self.level_step, user_id),
            )
            if cursor.rowcount == 0:
                raise UserNotFound(user_id)
            row = conn.execute(
                "SELECT total_acertos, total_erros, nivel FROM users WHERE id=?",
                (user_id,),
            ).fetchone()

        return Progress(
            total_correct=row["total_acertos"],
            total_incorrect=row["total_erros"],
            level=row["nivel"],
        )

    def top_by_correct(self, limit: int = 10) -> list[User]:
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM users ORDER BY total_acertos DESC, id ASC LIMIT ?",
                (limit,),
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    # ── Answer history ─────────────────────────────────────────────────

    def record_attempt(
        self,
        user_id: int,
        topic: str,
        correct: bool,
        question_text: str,
        user_answer: str,
    ) -> None:
        with self._db.connection() as conn:
            conn.execute(
                "INSERT INTO history (user_id, topic, correct, question_text, user_answer, created_at) "
                "VALUES (?,?,?,?,?,?)",
                (user_id, topic, int(bool(correct)), question_text, user_answer, int(time.time())),
            )

    def recent_history(self, user_id: int, limit: int = 20) -> list[dict]:
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT topic, correct, question_text, user_answer, created_at FROM history "
                "WHERE user_id=? ORDER BY created_at DESC, id DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [
            {
                "topic": r["topic"],
                "correct": bool(r["correct"]),
                "questionText": r["question_text"],
                "userAnswer": r["user_answer"],
                "createdAt": r["created_at"],
            }
            for r in rows
        ]
