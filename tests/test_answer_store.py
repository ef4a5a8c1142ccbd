"""
Unit tests for toeic_exam.services.answer_store.
"""

import pytest

from toeic_exam.models.session_state import Answer
from toeic_exam.services.answer_store import AnswerStore, normalize_choice


class TestNormalizeChoice:
    def test_normalize_choice_when_padded_then_stripped(self):
        assert normalize_choice("  B ") == "B"

    def test_normalize_choice_when_none_then_empty(self):
        assert normalize_choice(None) == ""


class TestAnswerStore:
    def test_record_when_unknown_question_then_raises_key_error(self):
        store = AnswerStore(["q1"])
        with pytest.raises(KeyError):
            store.record("nope", "A")
        assert len(store) == 0

    def test_record_when_reselected_then_elapsed_accumulates(self):
        store = AnswerStore(["q1"])
        store.record("q1", "A", 1500)
        answer = store.record("q1", "C", 500)

        assert answer.selected_choice == "C"
        assert answer.per_question_elapsed_ms == 2000

    def test_answered_count_when_choice_cleared_then_not_counted(self):
        store = AnswerStore(["q1", "q2"])
        store.record("q1", "A")
        store.record("q2", "B")
        store.record("q2", "")

        assert store.answered_count == 1
        assert "q2" in store

    def test_load_when_answer_for_unknown_question_then_ignored(self):
        store = AnswerStore(["q1"])
        store.load([
            Answer(question_id="q1", selected_choice="A", per_question_elapsed_ms=10),
            Answer(question_id="zz", selected_choice="B"),
        ])

        assert len(store) == 1
        assert store.get("q1").per_question_elapsed_ms == 10

    def test_as_dict_when_copy_is_mutated_then_store_unchanged(self):
        store = AnswerStore(["q1"])
        store.record("q1", "A")

        copy = store.as_dict()
        copy["q1"].selected_choice = "D"
        copy.pop("q1")

        assert store.get("q1").selected_choice == "A"
