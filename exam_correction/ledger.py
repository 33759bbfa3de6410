"""
Correction ledger.

Pure functions over a submission's corrections: keyed upsert, derived
discursive score and the submission-level correction status.
"""

from decimal import Decimal
from typing import Iterable

from exam_correction.models import (
    Correction,
    CorrectionMethod,
    CorrectionStatus,
    DiscursiveQuestion,
    EssayQuestion,
    Exam,
    MultipleChoiceQuestion,
    Question,
    Submission,
)


def is_correctable(question: Question) -> bool:
    """Whether a question is judged by a correction rather than an answer key."""
    return isinstance(question, (DiscursiveQuestion, EssayQuestion))


def requires_auto_correction(question: Question) -> bool:
    """
    Whether a question must be corrected before a submission is complete.

    Discursive questions always are. Essays only when they are graded by the
    model; a manual essay does not block completion, but once a correction
    is filed for it that correction is scored like any other.
    """
    if isinstance(question, DiscursiveQuestion):
        return True
    if isinstance(question, EssayQuestion):
        return question.essay_correction_method is CorrectionMethod.AI
    return False


def needs_correction(exam: Exam) -> bool:
    """Whether submissions to this exam wait on any correction at all."""
    return any(is_correctable(q) for q in exam.questions)


def required_questions(exam: Exam) -> list[Question]:
    return [q for q in exam.questions if requires_auto_correction(q)]


def uncorrected_required_questions(exam: Exam, submission: Submission) -> list[Question]:
    """Required questions of the exam that have no correction yet, in exam order."""
    corrected = {c.question_id for c in submission.corrections}
    return [q for q in required_questions(exam) if q.id not in corrected]


def upsert_correction(
    corrections: Iterable[Correction], correction: Correction
) -> tuple[Correction, ...]:
    """
    Insert a correction or replace the one filed for the same question.

    The replaced entry keeps its position; new entries are appended.
    """
    result: list[Correction] = []
    replaced = False
    for existing in corrections:
        if existing.question_id == correction.question_id:
            if not replaced:
                result.append(correction)
                replaced = True
            continue
        result.append(existing)
    if not replaced:
        result.append(correction)
    return tuple(result)


def compute_discursive_score(exam: Exam, corrections: Iterable[Correction]) -> Decimal:
    """Sum of the scores of all corrections that are not for multiple-choice questions."""
    multiple_choice_ids = {q.id for q in exam.questions if isinstance(q, MultipleChoiceQuestion)}
    return sum(
        (c.score for c in corrections if c.question_id not in multiple_choice_ids),
        Decimal(0),
    )


def all_required_corrected(exam: Exam, corrections: Iterable[Correction]) -> bool:
    corrected = {c.question_id for c in corrections}
    return all(q.id in corrected for q in required_questions(exam))


def compute_correction_status(
    exam: Exam, corrections: Iterable[Correction]
) -> CorrectionStatus | None:
    """
    Derive the submission-level correction status.

    Returns None when the exam has nothing to correct, CORRECTED when every
    required question has a correction and PENDING otherwise.
    """
    if not needs_correction(exam):
        return None
    if all_required_corrected(exam, corrections):
        return CorrectionStatus.CORRECTED
    return CorrectionStatus.PENDING
