"""
services/answer_store.py

문항 ID → 최신 답안(Answer) 저장소.
세션(ExamSession)만 변경하며, 항목은 처음 선택할 때 생성되고 세션 중 삭제되지 않는다.
"""

from typing import Dict, Iterable, List, Optional

from toeic_exam.models.session_state import Answer


def normalize_choice(choice: Optional[str]) -> str:
    """보기 식별자 정규화: None → "", 앞뒤 공백 제거."""
    return (choice or "").strip()


class AnswerStore:
    def __init__(self, question_ids: Iterable[str]):
        self._question_ids = frozenset(question_ids)
        self._answers: Dict[str, Answer] = {}

    def __contains__(self, question_id: str) -> bool:
        return question_id in self._answers

    def __len__(self) -> int:
        return len(self._answers)

    def get(self, question_id: str) -> Optional[Answer]:
        return self._answers.get(question_id)

    def record(self, question_id: str, choice: str, elapsed_ms: int = 0) -> Answer:
        """
        답안을 생성하거나 갱신한다.

        Args:
            question_id: 출제된 문제 ID (출제 목록에 없으면 KeyError)
            choice:      정규화된 보기 문자열. 빈 문자열이면 선택 해제.
            elapsed_ms:  이번 선택까지 누적할 체류 시간(ms)

        Returns:
            갱신된 Answer
        """
        if question_id not in self._question_ids:
            raise KeyError(question_id)

        previous = self._answers.get(question_id)
        total_ms = max(0, int(elapsed_ms))
        if previous is not None:
            total_ms += previous.per_question_elapsed_ms

        answer = Answer(
            question_id=question_id,
            selected_choice=choice,
            per_question_elapsed_ms=total_ms,
        )
        self._answers[question_id] = answer
        return answer

    def load(self, answers: Iterable[Answer]) -> None:
        """저장본 복원. 출제 목록에 없는 답안은 무시한다."""
        for a in answers:
            if a.question_id in self._question_ids:
                self._answers[a.question_id] = a.model_copy()

    @property
    def answered_count(self) -> int:
        return sum(1 for a in self._answers.values() if a.is_answered)

    def as_dict(self) -> Dict[str, Answer]:
        """외부 전달용 사본."""
        return {qid: a.model_copy() for qid, a in self._answers.items()}

    def as_list(self) -> List[Answer]:
        return [a.model_copy() for a in self._answers.values()]
