"""
Unit tests for the multiple-choice scorer and the score combiner.
"""

from datetime import datetime, timezone
from decimal import Decimal

from exam_correction.models import (
    Correction,
    CorrectionMethod,
    Exam,
    ScoringMethod,
    Submission,
    UserAnswer,
)
from exam_correction.scoring import (
    WeightedPercentage,
    combine_percentages,
    compute_final_score,
    round2,
    score_multiple_choice,
)


def _correction(question_id: str, score: str, max_score: str = "10") -> Correction:
    return Correction(
        question_id=question_id,
        score=Decimal(score),
        max_score=Decimal(max_score),
        feedback="ok",
        method=CorrectionMethod.MANUAL,
        corrected_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


class TestMultipleChoiceScorer:
    """Tests for score_multiple_choice."""

    def test_counts_correct_selections(self, multiple_choice_exam: Exam) -> None:
        """Test one right and one wrong answer gives 50%."""
        answers = [
            UserAnswer(question_id="q1", selected_alternative="a"),
            UserAnswer(question_id="q2", selected_alternative="c"),
        ]
        result = score_multiple_choice(multiple_choice_exam.multiple_choice_questions, answers)

        assert result is not None
        assert result.percentage == Decimal("50")
        assert result.question_count == 2
        assert result.correct_count == 1

    def test_missing_and_empty_selections_are_incorrect(self, multiple_choice_exam: Exam) -> None:
        """Test unanswered questions count as wrong rather than failing."""
        answers = [UserAnswer(question_id="q1", selected_alternative="")]
        result = score_multiple_choice(multiple_choice_exam.multiple_choice_questions, answers)

        assert result is not None
        assert result.percentage == Decimal("0")
        assert result.correct_count == 0

    def test_no_multiple_choice_questions(self, discursive_exam: Exam) -> None:
        """Test exams without multiple choice contribute nothing."""
        assert score_multiple_choice(discursive_exam.multiple_choice_questions, []) is None


class TestCombiner:
    """Tests for combine_percentages and compute_final_score."""

    def test_equal_weight_example(self) -> None:
        """Test 50% over 2 questions and 80% over 1 combine to 60.00."""
        result = combine_percentages(
            [WeightedPercentage(Decimal("50"), 2), WeightedPercentage(Decimal("80"), 1)],
            Decimal("100"),
        )
        assert result == Decimal("60.00")

    def test_zero_weight_gives_none(self) -> None:
        """Test nothing to combine yields no score."""
        assert combine_percentages([], Decimal("100")) is None

    def test_scales_to_total_points(self) -> None:
        """Test the final percentage is scaled to the exam's point scale."""
        result = combine_percentages([WeightedPercentage(Decimal("75"), 4)], Decimal("20"))
        assert result == Decimal("15.00")

    def test_round_half_up(self) -> None:
        """Test rounding to two places is half-up."""
        assert round2(Decimal("2.675")) == Decimal("2.68")
        assert round2(Decimal("2.665")) == Decimal("2.67")
        assert round2(Decimal("66.666666")) == Decimal("66.67")

    def test_final_score_of_mixed_submission(self, mixed_exam: Exam, mixed_answers) -> None:
        """Test every question counts equally across types."""
        submission = Submission(
            exam_id=mixed_exam.id,
            user_id="u1",
            answers=tuple(mixed_answers),
            corrections=(_correction("q3", "8"),),
        )
        assert compute_final_score(mixed_exam, submission) == Decimal("60.00")

    def test_final_score_uses_default_total_points(self, discursive_exam: Exam) -> None:
        """Test exams without total_points use the default scale."""
        submission = Submission(
            exam_id=discursive_exam.id,
            user_id="u1",
            corrections=(_correction("d1", "10"), _correction("d2", "5"), _correction("d3", "0")),
        )
        assert compute_final_score(discursive_exam, submission, Decimal("100")) == Decimal("50.00")
        assert compute_final_score(discursive_exam, submission, Decimal("10")) == Decimal("5.00")

    def test_corrections_for_unknown_questions_are_ignored(self, discursive_exam: Exam) -> None:
        """Test stale corrections for removed questions do not count."""
        submission = Submission(
            exam_id=discursive_exam.id,
            user_id="u1",
            corrections=(_correction("d1", "10"), _correction("gone", "0")),
        )
        assert compute_final_score(discursive_exam, submission) == Decimal("100.00")

    def test_tri_exam_is_never_scored(self, tri_exam: Exam, mixed_answers) -> None:
        """Test the combiner leaves TRI exams to the external process."""
        submission = Submission(
            exam_id=tri_exam.id,
            user_id="u1",
            answers=tuple(mixed_answers),
            corrections=(_correction("q3", "10"),),
        )
        assert tri_exam.scoring_method is ScoringMethod.TRI
        assert compute_final_score(tri_exam, submission) is None
