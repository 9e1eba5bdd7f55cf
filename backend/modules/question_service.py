"""
Question Delivery: serves N questions for a topic from the cache when it can,
and tops up the shortfall with freshly synthesized questions otherwise.
"""

import logging
import time
import uuid

from modules.question_cache import Question, QuestionCache
from modules.synthesizer import (
    SOURCE_FALLBACK,
    QuestionDraft,
    QuestionSynthesizer,
)

logger = logging.getLogger(__name__)


SOURCE_CACHE = "cache"
SOURCE_GENERATED = "ai"
FALLBACK_ID_PREFIX = "fallback"


def _correlation_id() -> str:
    return uuid.uuid4().hex


def question_payload(question: Question, source: str) -> dict:
    """Response shape for a stored question; `id` is fresh on every serve."""
    return {
        "id": _correlation_id(),
        "questionId": question.id,
        "topic": question.topic,
        "text": question.text,
        "options": list(question.options),
        "correctAnswer": question.correct_answer,
        "explanation": question.explanation,
        "source": source,
    }


def fallback_payload(draft: QuestionDraft, index: int, stamp: int) -> dict:
    return {
        "id": f"{FALLBACK_ID_PREFIX}-{stamp}-{index}",
        "questionId": None,
        "topic": draft.topic,
        "text": draft.text,
        "options": list(draft.options),
        "correctAnswer": draft.correct_answer,
        "explanation": draft.explanation or "",
        "source": SOURCE_FALLBACK,
    }


class QuestionService:
    def __init__(
        self,
        cache: QuestionCache,
        synthesizer: QuestionSynthesizer,
        known_texts_sample: int = 10,
        cache_fallback: bool = False,
    ):
        self.cache = cache
        self.synthesizer = synthesizer
        self.known_texts_sample = known_texts_sample
        self.cache_fallback = cache_fallback

    def get_questions(self, topic: str, hint: str, count: int) -> list[dict]:
        """
        Return `count` questions for `topic` whenever some source can supply them.

        1. Random sample of up to `count` cached questions.
        2. Enough cached → serve them, the LLM is not called.
        3. Otherwise synthesize `count` drafts with the cached texts as
           anti-duplication context.
        4. Persist each draft through find-or-create (duplicates collapse).
        5. New questions first, padded with the cached sample, cut to `count`.

        A short or empty list is a valid answer, never an error.
        """
        if count <= 0:
            return []

        cached = self.cache.sample_by_topic(topic, count)
        if len(cached) >= count:
            logger.info("[QUESTIONS] Cache hit for %r (%d)", topic, count)
            return [question_payload(q, SOURCE_CACHE) for q in cached[:count]]

        known_texts = self.cache.list_recent_texts_by_topic(topic, self.known_texts_sample)
        result = self.synthesizer.synthesize(topic, hint, count, known_texts)

        if result.is_fallback and not self.cache_fallback:
            return self._serve_with_fallback(cached, result.drafts, count)

        fresh: list[Question] = []
        seen_ids: set[int] = set()
        created_count = 0
        for draft in result.drafts:
            question, created = self.cache.find_or_create(
                draft.text,
                topic=topic,
                options=draft.options,
                correct_answer=draft.correct_answer,
                explanation=draft.explanation or "",
            )
            created_count += int(created)
            if question.id not in seen_ids:
                seen_ids.add(question.id)
                fresh.append(question)

        source = SOURCE_FALLBACK if result.is_fallback else SOURCE_GENERATED
        served = [question_payload(q, source) for q in fresh[:count]]
        for q in cached:
            if len(served) >= count:
                break
            if q.id not in seen_ids:
                seen_ids.add(q.id)
                served.append(question_payload(q, SOURCE_CACHE))

        logger.info(
            "[QUESTIONS] %r: %d cached, %d drafts, %d new rows, serving %d/%d",
            topic, len(cached), len(result.drafts), created_count, len(served), count,
        )
        return served

    def _serve_with_fallback(self, cached: list[Question], drafts: list[QuestionDraft], count: int) -> list[dict]:
        # Real cached questions beat the offline placeholder; it only fills the gap.
        served = [question_payload(q, SOURCE_CACHE) for q in cached[:count]]
        stamp = int(time.time() * 1000)
        for index, draft in enumerate(drafts):
            if len(served) >= count:
                break
            served.append(fallback_payload(draft, index, stamp))
        return served

    def fix_question(self, question_id: int, correct_answer: int) -> Question:
        """Rewrite the answer key of a cached question (raises QuestionNotFound)."""
        return self.cache.update_correct_answer(question_id, correct_answer)
