import json

import pytest

from modules.database import Database
from modules.llm_client import LLMError, LLMUnavailable
from modules.question_cache import QuestionCache
from modules.synthesizer import QuestionDraft, SynthesisResult, fallback_drafts
from modules.users import UserStore


def make_question(i: int, topic: str = "Estequiometria", correct: int = 0) -> dict:
    return {
        "topic": topic,
        "text": f"Questão {i} sobre {topic}?",
        "options": [f"opção {i}-{k}" for k in range(5)],
        "correctAnswer": correct,
        "explanation": f"Explicação {i}",
    }


class FakeLLM:
    """Stands in for LLMClient: replays canned responses or raises."""

    def __init__(self, response=None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    def call_llm(self, prompt, system_prompt="", temperature=0.7, max_tokens=2000, json_mode=False):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "json_mode": json_mode})
        if self.error is not None:
            raise self.error
        if isinstance(self.response, (dict, list)):
            return json.dumps(self.response, ensure_ascii=False)
        return self.response


class FakeSynthesizer:
    """Records calls and returns a fixed list of drafts (or a fallback batch)."""

    def __init__(self, drafts: list[dict] | None = None, fallback: bool = False):
        self.drafts = drafts or []
        self.fallback = fallback
        self.calls: list[tuple] = []

    def synthesize(self, topic, hint, count, known_texts=None):
        self.calls.append((topic, hint, count, list(known_texts or [])))
        if self.fallback:
            return SynthesisResult(drafts=fallback_drafts(topic, count), source="fallback", reason="upstream_error")
        return SynthesisResult(drafts=[QuestionDraft.model_validate(d) for d in self.drafts], source="ai")


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a freshly initialised SQLite database in a temp dir."""
    db = Database(str(tmp_path / "test_quiz.db"))
    db.create_tables()
    return db


@pytest.fixture
def question_cache(tmp_db):
    return QuestionCache(tmp_db)


@pytest.fixture
def user_store(tmp_db):
    return UserStore(tmp_db, level_step=10)


@pytest.fixture
def llm_unavailable():
    return FakeLLM(error=LLMUnavailable("no key"))


@pytest.fixture
def llm_down():
    return FakeLLM(error=LLMError("connection reset"))
