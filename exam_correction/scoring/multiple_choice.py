"""
Multiple-choice scorer.

Scores the multiple-choice part of a submission against the answer key.
Pure function, no side effects.
"""

from decimal import Decimal
from typing import Iterable, NamedTuple, Sequence

from exam_correction.models import MultipleChoiceQuestion, UserAnswer


class MultipleChoiceScore(NamedTuple):
    """Percentage of correct answers and how many questions it covers."""

    percentage: Decimal
    question_count: int
    correct_count: int


def score_multiple_choice(
    questions: Sequence[MultipleChoiceQuestion],
    answers: Iterable[UserAnswer],
) -> MultipleChoiceScore | None:
    """
    Score multiple-choice answers.

    An answer is correct when its selected alternative is the one flagged
    correct. Missing or empty selections count as incorrect.

    Args:
        questions: The multiple-choice questions of the exam.
        answers: The learner's answers (any variant, extra ones are ignored).

    Returns:
        The score, or None when there are no multiple-choice questions.
    """
    if not questions:
        return None

    selected = {a.question_id: a.selected_alternative for a in answers}

    correct = sum(
        1 for q in questions if selected.get(q.id) and selected[q.id] == q.correct_alternative_id
    )

    percentage = Decimal(correct) / Decimal(len(questions)) * 100
    return MultipleChoiceScore(
        percentage=percentage,
        question_count=len(questions),
        correct_count=correct,
    )
