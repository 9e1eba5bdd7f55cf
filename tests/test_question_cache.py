"""Tests for the question cache store."""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import make_question
from modules.question_cache import QuestionNotFound


def _store(cache, i, topic="Estequiometria", correct=0):
    q = make_question(i, topic, correct)
    return cache.find_or_create(
        q["text"],
        topic=q["topic"],
        options=q["options"],
        correct_answer=q["correctAnswer"],
        explanation=q["explanation"],
    )


def test_find_or_create_creates(question_cache):
    question, created = _store(question_cache, 1)
    assert created is True
    assert question.id > 0
    assert question.options == [f"opção 1-{k}" for k in range(5)]
    assert question.explanation == "Explicação 1"


def test_find_or_create_is_idempotent(question_cache):
    first, created_first = _store(question_cache, 1)
    second, created_second = _store(question_cache, 1)
    assert created_first is True
    assert created_second is False
    assert first.id == second.id
    assert question_cache.count_by_topic("Estequiometria") == 1


def test_find_or_create_duplicate_keeps_original_row(question_cache):
    original, _ = _store(question_cache, 1, correct=2)
    again, created = question_cache.find_or_create(
        original.text, topic="Outro", options=["a"] * 5, correct_answer=4,
    )
    assert created is False
    assert again.topic == "Estequiometria"
    assert again.correct_answer == 2


def test_sample_by_topic_respects_limit_and_topic(question_cache):
    for i in range(6):
        _store(question_cache, i)
    _store(question_cache, 99, topic="Termoquímica")

    sample = question_cache.sample_by_topic("Estequiometria", 4)
    assert len(sample) == 4
    assert len({q.id for q in sample}) == 4
    assert all(q.topic == "Estequiometria" for q in sample)


def test_sample_by_topic_returns_all_when_limit_exceeds(question_cache):
    for i in range(2):
        _store(question_cache, i)
    assert len(question_cache.sample_by_topic("Estequiometria", 10)) == 2


def test_sample_by_unknown_topic_is_empty(question_cache):
    _store(question_cache, 1)
    assert question_cache.sample_by_topic("Radioatividade", 5) == []


def test_list_recent_texts_newest_first(question_cache):
    for i in range(5):
        _store(question_cache, i)
    texts = question_cache.list_recent_texts_by_topic("Estequiometria", 3)
    assert texts == [make_question(i)["text"] for i in (4, 3, 2)]


def test_update_correct_answer(question_cache):
    question, _ = _store(question_cache, 1, correct=0)
    updated = question_cache.update_correct_answer(question.id, 3)
    assert updated.correct_answer == 3
    assert question_cache.get(question.id).correct_answer == 3


def test_update_correct_answer_unknown_id(question_cache):
    with pytest.raises(QuestionNotFound):
        question_cache.update_correct_answer(12345, 1)


def test_update_correct_answer_rejects_out_of_range(question_cache):
    question, _ = _store(question_cache, 1)
    with pytest.raises(ValueError):
        question_cache.update_correct_answer(question.id, 5)


def test_find_or_create_rejects_out_of_range_index(question_cache):
    with pytest.raises(ValueError):
        question_cache.find_or_create("Qual o pH?", topic="Ácidos", options=["a"] * 5, correct_answer=5)
    assert question_cache.count_by_topic("Ácidos") == 0


def test_concurrent_find_or_create_yields_one_row(question_cache):
    workers = 12
    barrier = threading.Barrier(workers)
    q = make_question(1)

    def insert(_):
        barrier.wait()
        return question_cache.find_or_create(
            q["text"], topic=q["topic"], options=q["options"], correct_answer=0,
        )

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(insert, range(workers)))

    assert len({question.id for question, _ in results}) == 1
    assert sum(created for _, created in results) == 1
    assert question_cache.count_by_topic("Estequiometria") == 1
