"""
Score combiner.

Combines per-question percentages from every question family into one
final score on the exam's point scale. Every scored question counts
equally: the multiple-choice percentage is weighted by its question
count, each filed correction by one.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, NamedTuple

from exam_correction.models import Correction, Exam, ScoringMethod, Submission
from exam_correction.scoring.multiple_choice import MultipleChoiceScore, score_multiple_choice

TWO_PLACES = Decimal("0.01")


class WeightedPercentage(NamedTuple):
    """A percentage in [0, 100] and the number of questions it stands for."""

    percentage: Decimal
    weight: int


def round2(value: Decimal) -> Decimal:
    """Round to two decimal places, half-up."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def combine_percentages(
    parts: Iterable[WeightedPercentage], total_points: Decimal
) -> Decimal | None:
    """
    Weighted mean of percentages, scaled to the point scale.

    Args:
        parts: Weighted percentages to combine.
        total_points: Point scale of the final score.

    Returns:
        The final score rounded to two places, or None when the total
        weight is zero.
    """
    weighted_sum = Decimal(0)
    total_weight = 0
    for part in parts:
        weighted_sum += part.percentage * part.weight
        total_weight += part.weight

    if total_weight == 0:
        return None

    final_percentage = weighted_sum / total_weight
    return round2(final_percentage / 100 * total_points)


def collect_parts(
    multiple_choice: MultipleChoiceScore | None, corrections: Iterable[Correction]
) -> list[WeightedPercentage]:
    parts: list[WeightedPercentage] = []
    if multiple_choice is not None:
        parts.append(WeightedPercentage(multiple_choice.percentage, multiple_choice.question_count))
    parts.extend(WeightedPercentage(c.percentage, 1) for c in corrections)
    return parts


def compute_final_score(
    exam: Exam, submission: Submission, default_total_points: Decimal = Decimal("100")
) -> Decimal | None:
    """
    Compute the final score of a submission.

    Only corrections for questions that still belong to the exam are
    counted. Callers are responsible for only invoking this once every
    required question is corrected.

    Args:
        exam: The exam the submission belongs to.
        submission: The submission to score.
        default_total_points: Point scale when the exam sets none.

    Returns:
        The final score, or None for TRI exams and for exams with nothing
        to score.
    """
    if exam.scoring_method is not ScoringMethod.NORMAL:
        return None

    question_ids = {q.id for q in exam.questions}
    multiple_choice = score_multiple_choice(exam.multiple_choice_questions, submission.answers)
    corrections = [c for c in submission.corrections if c.question_id in question_ids]

    total_points = exam.total_points or default_total_points
    return combine_percentages(collect_parts(multiple_choice, corrections), total_points)
