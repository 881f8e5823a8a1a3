"""
test_question_bank.py - Tests for the static question catalog
"""

import random

import pytest

from app.errors import InvalidInput
from app.services import question_bank


class TestListQuestions:

    def test_full_section(self):
        questions, total = question_bank.list_questions("reading")
        assert total == 4
        assert [q.id for q in questions] == ["r1", "r2", "r3", "r4"]

    def test_difficulty_filter(self):
        questions, total = question_bank.list_questions("reading", difficulty="easy")
        assert total == 1
        assert questions[0].id == "r3"

    def test_unknown_difficulty_ignored(self):
        _, total = question_bank.list_questions("reading", difficulty="impossible")
        assert total == 4

    def test_paging(self):
        questions, total = question_bank.list_questions("reading", limit=2, offset=1)
        assert total == 4
        assert [q.id for q in questions] == ["r2", "r3"]

    def test_invalid_section(self):
        with pytest.raises(InvalidInput, match="Invalid section"):
            question_bank.list_questions("math")


class TestRandomQuestions:

    def test_no_repeats_and_capped(self):
        questions = question_bank.random_questions("listening", count=10, rng=random.Random(1))
        assert len(questions) == 2
        assert {q.id for q in questions} == {"l1", "l2"}

    def test_count(self):
        questions = question_bank.random_questions("reading", count=3, rng=random.Random(1))
        assert len(questions) == 3
        assert len({q.id for q in questions}) == 3


def test_get_question():
    question = question_bank.get_question("r1")
    assert question.type == "reading"
    assert question.correct_answer == "It provided power that was independent of natural forces"
    assert question_bank.get_question("missing") is None


def test_stats():
    stats = {s.section: s for s in question_bank.stats()}
    assert set(stats) == {"reading", "listening", "speaking", "writing"}
    assert stats["reading"].total == 4
    assert stats["reading"].by_difficulty.easy == 1
    assert stats["reading"].by_difficulty.medium == 2
    assert stats["reading"].by_difficulty.hard == 1
    assert stats["writing"].by_difficulty.medium == 2
