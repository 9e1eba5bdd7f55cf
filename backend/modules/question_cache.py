"""
Question Cache: persists every generated question keyed by its unique text,
so repeated topics can be served without calling the LLM again.
"""

import json
import logging
import sqlite3
import time
from dataclasses import dataclass, field
from typing import Optional

from modules.database import Database

logger = logging.getLogger(__name__)


class QuestionNotFound(LookupError):
    """Raised when a question id has no row in the cache."""

    def __init__(self, question_id: int):
        super().__init__(f"Question {question_id} not found")
        self.question_id = question_id


@dataclass
class Question:
    id: int
    topic: str
    text: str
    options: list[str] = field(default_factory=list)
    correct_answer: int = 0
    explanation: str = ""
    created_at: int = 0


def _row_to_question(row: sqlite3.Row) -> Question:
    return Question(
        id=row["id"],
        topic=row["topic"],
        text=row["text"],
        options=json.loads(row["options"]),
        correct_answer=row["correct_answer"],
        explanation=row["explanation"] or "",
        created_at=row["created_at"],
    )


class QuestionCache:
    def __init__(self, db: Database):
        self._db = db

    def sample_by_topic(self, topic: str, limit: int) -> list[Question]:
        """Up to `limit` distinct questions of `topic` in random order."""
        if limit <= 0:
            return []
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM questions WHERE topic=? ORDER BY RANDOM() LIMIT ?",
                (topic, limit),
            ).fetchall()
        return [_row_to_question(r) for r in rows]

    def list_recent_texts_by_topic(self, topic: str, limit: int) -> list[str]:
        if limit <= 0:
            return []
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT text FROM questions WHERE topic=? ORDER BY id DESC LIMIT ?",
                (topic, limit),
            ).fetchall()
        return [r["text"] for r in rows]

    def find_or_create(
        self,
        text: str,
        topic: str,
        options: list[str],
        correct_answer: int,
        explanation: str = "",
    ) -> tuple[Question, bool]:
        """
        Insert a question unless its text is already stored.

        The UNIQUE constraint on `text` decides the race: whichever insert lands
        first wins and every caller reads back that same row.

        Returns:
            (question, was_created)
        """
        if not 0 <= correct_answer <= 4:
            raise ValueError(f"correct answer index must be in [0, 4], got {correct_answer}")
        with self._db.connection() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO questions "
                "(topic, text, options, correct_answer, explanation, created_at) "
                "VALUES (?,?,?,?,?,?)",
                (
                    topic,
                    text,
                    json.dumps(options, ensure_ascii=False),
                    correct_answer,
                    explanation or "",
                    int(time.time()),
                ),
            )
            created = cursor.rowcount == 1
            row = conn.execute("SELECT * FROM questions WHERE text=?", (text,)).fetchone()

        if not created:
            logger.debug("[CACHE] Duplicate question text, reusing id=%s", row["id"])
        return _row_to_question(row), created

    def get(self, question_id: int) -> Optional[Question]:
        with self._db.connection() as conn:
            row = conn.execute("SELECT * FROM questions WHERE id=?", (question_id,)).fetchone()
        return _row_to_question(row) if row else None

    def count_by_topic(self, topic: str) -> int:
        with self._db.connection() as conn:
            row = conn.execute("SELECT COUNT(*) FROM questions WHERE topic=?", (topic,)).fetchone()
        return row[0]

    def update_correct_answer(self, question_id: int, new_index: int) -> Question:
        if not 0 <= new_index <= 4:
            raise ValueError(f"correct answer index must be in [0, 4], got {new_index}")
        with self._db.connection() as conn:
            cursor = conn.execute(
                "UPDATE questions SET correct_answer=? WHERE id=?",
                (new_index, question_id),
            )
            if cursor.rowcount == 0:
                raise QuestionNotFound(question_id)
            row = conn.execute("SELECT * FROM questions WHERE id=?", (question_id,)).fetchone()
        logger.info("[CACHE] Question %s answer key set to %s", question_id, new_index)
        return _row_to_question(row)
