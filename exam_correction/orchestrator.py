"""
Correction orchestrator - the stateful correction workflow.

Applies single and bulk corrections to a submission, keeps its ledger,
discursive score and correction status consistent, publishes the final
score once every required question is judged and notifies the learner
exactly once when that happens.
"""

import logging
from decimal import Decimal
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from exam_correction.config import Settings, get_settings
from exam_correction.errors import (
    BulkCorrectionFailedError,
    DuplicateSubmissionError,
    GradingFailedError,
    InvalidCorrectionError,
    MissingAnswerError,
    NotFoundError,
)
from exam_correction.grading import ExternalGrader, GraderError, LLMGrader
from exam_correction.ledger import (
    compute_correction_status,
    compute_discursive_score,
    is_correctable,
    required_questions,
    uncorrected_required_questions,
    upsert_correction,
)
from exam_correction.models import (
    BulkCorrectionReport,
    Correction,
    CorrectionMethod,
    CorrectionOutcome,
    CorrectionStatus,
    DiscursiveQuestion,
    EssayQuestion,
    Exam,
    Notification,
    Question,
    ScoringMethod,
    Submission,
    SubmitResult,
    UserAnswer,
    to_decimal,
    utcnow,
)
from exam_correction.scoring import compute_final_score
from exam_correction.store import ExamStore, NotificationSink, SubmissionStore

logger = logging.getLogger(__name__)


class CorrectionOrchestrator:
    """
    Entry points of the correction engine.

    Grading calls run outside of any lock; only the ledger update and the
    recomputation of derived fields run inside the store's atomic update.
    """

    def __init__(
        self,
        exams: ExamStore,
        submissions: SubmissionStore,
        notifications: NotificationSink,
        grader: ExternalGrader | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            exams: Exam store.
            submissions: Submission store.
            notifications: Sink for "correction ready" notifications.
            grader: External grader. Built from settings if not provided.
            settings: Configuration settings. Uses global settings if not provided.
        """
        self._settings = settings or get_settings()
        self._exams = exams
        self._submissions = submissions
        self._notifications = notifications
        self._grader = grader or LLMGrader(self._settings)

    # ==========================================================================
    # Submit
    # ==========================================================================

    def submit_answers(
        self,
        exam_id: str,
        user_id: str,
        answers: Iterable[UserAnswer | Mapping[str, Any]],
        user_name: str | None = None,
    ) -> SubmitResult:
        """
        Record a learner's answers.

        Exams with no question that requires correction are scored
        immediately (normal scoring only); manual essays do not hold the
        score back. Otherwise the submission starts pending and,
        when the exam is configured for model correction, a bulk correction
        is attempted before returning. Grading failures at this point leave
        the submission pending.

        Raises:
            NotFoundError: If the exam does not exist.
            DuplicateSubmissionError: If the learner already submitted.
        """
        exam = self._get_exam(exam_id)
        if self._submissions.get_submission(exam_id, user_id) is not None:
            raise DuplicateSubmissionError(
                f"User '{user_id}' already submitted exam '{exam_id}'"
            )

        try:
            parsed = tuple(
                a if isinstance(a, UserAnswer) else UserAnswer.model_validate(a) for a in answers
            )
        except ValidationError as e:
            raise InvalidCorrectionError(f"Invalid answers: {e}") from e

        submission = Submission(
            exam_id=exam_id, user_id=user_id, user_name=user_name, answers=parsed
        )

        status = compute_correction_status(exam, ())
        update: dict[str, Any] = {"correction_status": status}
        if status is not CorrectionStatus.PENDING and exam.scoring_method is ScoringMethod.NORMAL:
            update["score"] = self._final_score(exam, submission)
        if status is CorrectionStatus.CORRECTED:
            # Complete at submit time; the response itself informs the learner
            update["correction_notified_at"] = submission.submitted_at
        submission = submission.model_copy(update=update)

        self._submissions.insert_submission(submission)
        logger.info(
            "Submission %s created for exam %s by user %s (status=%s)",
            submission.id,
            exam_id,
            user_id,
            submission.correction_status.value if submission.correction_status else "none",
        )

        if (
            submission.correction_status is CorrectionStatus.PENDING
            and exam.discursive_correction_method is CorrectionMethod.AI
            and required_questions(exam)
        ):
            try:
                self.correct_all_discursive(exam_id, user_id)
            except BulkCorrectionFailedError as e:
                logger.warning(
                    "Automatic correction of submission %s failed, left pending: %s",
                    submission.id,
                    e,
                )

        stored = self._submissions.get_submission_by_id(submission.id) or submission
        return SubmitResult(
            submission_id=stored.id,
            score=stored.score,
            correction_status=stored.correction_status,
            message=self._submit_message(exam, stored),
        )

    @staticmethod
    def _submit_message(exam: Exam, submission: Submission) -> str:
        if submission.correction_status is CorrectionStatus.CORRECTED and submission.corrections:
            return "Submission received and corrected automatically."
        if submission.correction_status is CorrectionStatus.PENDING:
            return (
                "Submission received. Open questions will be corrected soon; "
                "you will be notified when the correction is ready."
            )
        if exam.scoring_method is ScoringMethod.TRI:
            return "Submission received. The TRI score will be computed after the exam closes."
        return "Submission received."

    # ==========================================================================
    # Single-question correction
    # ==========================================================================

    def correct_question(
        self,
        exam_id: str,
        user_id: str,
        question_id: str,
        method: CorrectionMethod | str,
        score: Any = None,
        feedback: str | None = None,
        rigor: float | None = None,
        corrected_by: str | None = None,
    ) -> CorrectionOutcome:
        """
        Correct one discursive or essay question of a submission.

        Args:
            exam_id: Exam id.
            user_id: Learner id.
            question_id: Question to correct.
            method: "manual" or "ai".
            score: Manual score in [0, question max score].
            feedback: Manual feedback, required for manual corrections.
            rigor: Model strictness in [0, 1] for "ai".
            corrected_by: Grader identity recorded on manual corrections.

        Returns:
            The correction and the submission's updated derived state.

        Raises:
            InvalidCorrectionError: On an unknown method, a non-correctable
                question or invalid manual score/feedback.
            NotFoundError: If exam, submission, question or answer is missing.
            GradingFailedError: If the external grader fails; nothing is written.
        """
        correction_method = self._parse_method(method)
        exam = self._get_exam(exam_id)
        submission = self._get_submission(exam_id, user_id)

        question = exam.find_question(question_id)
        if question is None:
            raise NotFoundError(f"Question '{question_id}' not found in exam '{exam_id}'")
        if not is_correctable(question):
            raise InvalidCorrectionError(
                f"Question '{question_id}' is not a discursive or essay question"
            )

        answer = submission.find_answer(question_id)
        if answer is None or not answer.has_text:
            raise MissingAnswerError(question_id)

        if correction_method is CorrectionMethod.MANUAL:
            correction = self._manual_correction(question, score, feedback, corrected_by)
        else:
            resolved_rigor = self._resolve_rigor(exam, question, rigor)
            try:
                correction = self._grade(question, answer.discursive_text or "", resolved_rigor)
            except GraderError as e:
                logger.error(
                    "Automatic correction of question %s (submission %s) failed: %s",
                    question_id,
                    submission.id,
                    e,
                )
                raise GradingFailedError(question_id, e) from e

        _, after, _ = self._apply(exam, submission.id, [correction], replace=True)
        logger.info(
            "Question %s of submission %s corrected (%s): %s/%s",
            question_id,
            submission.id,
            correction.method.value,
            correction.score,
            correction.max_score,
        )

        return CorrectionOutcome(
            correction=correction,
            all_corrected=after.correction_status is CorrectionStatus.CORRECTED,
            discursive_score=after.discursive_score or Decimal(0),
            correction_status=after.correction_status,
            score=after.score,
        )

    def _manual_correction(
        self,
        question: Question,
        score: Any,
        feedback: str | None,
        corrected_by: str | None,
    ) -> Correction:
        max_score: Decimal = question.max_score  # type: ignore[union-attr]
        try:
            value = to_decimal(score)
        except (ValueError, ArithmeticError):
            value = None
        if not isinstance(value, Decimal) or not value.is_finite():
            raise InvalidCorrectionError("Manual correction requires a numeric score")
        if value < 0 or value > max_score:
            raise InvalidCorrectionError(f"Score must be between 0 and {max_score}, got {value}")
        if not feedback or not feedback.strip():
            raise InvalidCorrectionError("Manual correction requires feedback")

        return Correction(
            question_id=question.id,
            score=value,
            max_score=max_score,
            feedback=feedback.strip(),
            method=CorrectionMethod.MANUAL,
            corrected_by=corrected_by,
        )

    # ==========================================================================
    # Bulk correction
    # ==========================================================================

    def correct_all_discursive(
        self, exam_id: str, user_id: str, rigor: float | None = None
    ) -> BulkCorrectionReport:
        """
        Correct every required, uncorrected question of a submission with the model.

        Questions are graded one after another. A failure is recorded for that
        question only and the others proceed.

        Args:
            exam_id: Exam id.
            user_id: Learner id.
            rigor: Model strictness in [0, 1]; falls back to per-question and
                exam settings.

        Returns:
            How many questions were corrected out of how many were attempted,
            with one message per failed question.

        Raises:
            NotFoundError: If exam or submission is missing.
            InvalidCorrectionError: If the exam has nothing to correct automatically.
            BulkCorrectionFailedError: If no question could be corrected.
        """
        exam = self._get_exam(exam_id)
        submission = self._get_submission(exam_id, user_id)
        if rigor is not None:
            self._check_rigor(rigor)

        if not required_questions(exam):
            raise InvalidCorrectionError(
                f"Exam '{exam_id}' has no questions that require automatic correction"
            )

        targets = uncorrected_required_questions(exam, submission)
        corrections: list[Correction] = []
        errors: list[str] = []

        for question in targets:
            answer = submission.find_answer(question.id)
            if answer is None or not answer.has_text:
                errors.append(f"Question {question.number}: answer not found")
                continue

            try:
                corrections.append(
                    self._grade(
                        question,
                        answer.discursive_text or "",
                        self._resolve_rigor(exam, question, rigor),
                    )
                )
            except GraderError as e:
                logger.warning(
                    "Question %s of submission %s not corrected: %s",
                    question.number,
                    submission.id,
                    e,
                )
                errors.append(f"Question {question.number}: {e}")

        if targets and not corrections:
            raise BulkCorrectionFailedError(errors, total=len(targets))

        applied: list[str] = []
        if corrections:
            # Questions corrected concurrently while grading keep their correction
            _, after, applied = self._apply(exam, submission.id, corrections, replace=False)
        else:
            after = submission
        skipped = tuple(c.question_id for c in corrections if c.question_id not in applied)

        logger.info(
            "Bulk correction of submission %s: %d/%d corrected, %d skipped, %d errors",
            submission.id,
            len(applied),
            len(targets),
            len(skipped),
            len(errors),
        )

        return BulkCorrectionReport(
            corrected=len(applied),
            total=len(targets),
            discursive_score=after.discursive_score,
            errors=tuple(errors),
            skipped=skipped,
            all_corrected=after.correction_status is CorrectionStatus.CORRECTED,
            correction_status=after.correction_status,
            score=after.score,
        )

    # ==========================================================================
    # Shared steps
    # ==========================================================================

    def _grade(self, question: Question, answer_text: str, rigor: float) -> Correction:
        """
        Have the external grader judge one answer.

        Raises:
            GraderError: If grading fails or returns an out-of-range result.
        """
        try:
            if isinstance(question, DiscursiveQuestion):
                result = self._grader.grade_discursive(question, answer_text, rigor)
                return Correction(
                    question_id=question.id,
                    score=result.score,
                    max_score=result.max_score,
                    feedback=result.feedback,
                    method=CorrectionMethod.AI,
                    key_points_found=result.key_points_found,
                )
            if isinstance(question, EssayQuestion):
                essay = self._grader.grade_essay(question, answer_text, rigor)
                return Correction(
                    question_id=question.id,
                    score=essay.score,
                    max_score=essay.max_score,
                    feedback=essay.general_feedback,
                    method=CorrectionMethod.AI,
                    essay_competences=essay.competences,
                    essay_general_feedback=essay.general_feedback,
                )
        except ValidationError as e:
            raise GraderError(f"Grader returned an invalid result: {e}", cause=e) from e
        raise InvalidCorrectionError(f"Question '{question.id}' cannot be graded")

    def _apply(
        self,
        exam: Exam,
        submission_id: str,
        corrections: list[Correction],
        replace: bool,
    ) -> tuple[Submission, Submission, list[str]]:
        """
        Upsert corrections and recompute derived fields in one atomic store update.

        Returns:
            Tuple of (before, after, ids of the questions whose correction was written).
        """
        applied: list[str] = []

        def mutate(current: Submission) -> Submission:
            applied.clear()
            ledger = current.corrections
            for correction in corrections:
                if not replace and current.find_correction(correction.question_id):
                    continue
                ledger = upsert_correction(ledger, correction)
                applied.append(correction.question_id)

            status = compute_correction_status(exam, ledger)
            update: dict[str, Any] = {
                "corrections": ledger,
                "discursive_score": compute_discursive_score(exam, ledger),
                "correction_status": status,
            }
            if status is CorrectionStatus.CORRECTED:
                if exam.scoring_method is ScoringMethod.NORMAL:
                    update["score"] = self._final_score(
                        exam, current.model_copy(update={"corrections": ledger})
                    )
                if current.correction_notified_at is None:
                    update["correction_notified_at"] = utcnow()
            return current.model_copy(update=update)

        before, after = self._submissions.update(submission_id, mutate)

        if before.correction_notified_at is None and after.correction_notified_at is not None:
            logger.info("Submission %s fully corrected", submission_id)
            self._notify(exam, after)

        return before, after, applied

    def _notify(self, exam: Exam, submission: Submission) -> None:
        self._notifications.enqueue(
            Notification(
                user_id=submission.user_id,
                exam_id=exam.id,
                exam_title=exam.title,
                message=f'The correction of your exam "{exam.title}" is ready!',
            )
        )
        logger.info("Correction-ready notification enqueued for user %s", submission.user_id)

    def _final_score(self, exam: Exam, submission: Submission) -> Decimal | None:
        return compute_final_score(exam, submission, self._settings.default_total_points)

    def _resolve_rigor(self, exam: Exam, question: Question, requested: float | None) -> float:
        """Explicit rigor wins, then the essay's own dial, then the exam's, then the default."""
        if requested is not None:
            return self._check_rigor(requested)
        if isinstance(question, EssayQuestion) and question.essay_ai_rigor is not None:
            return question.essay_ai_rigor
        if exam.ai_rigor is not None:
            return exam.ai_rigor
        return self._settings.default_rigor

    @staticmethod
    def _check_rigor(rigor: float) -> float:
        if isinstance(rigor, bool) or not isinstance(rigor, (int, float)) or not 0 <= rigor <= 1:
            raise InvalidCorrectionError(f"Rigor must be a number between 0 and 1, got {rigor!r}")
        return float(rigor)

    @staticmethod
    def _parse_method(method: CorrectionMethod | str) -> CorrectionMethod:
        try:
            return CorrectionMethod(method)
        except ValueError as e:
            raise InvalidCorrectionError(
                f"Invalid method {method!r}. Use 'manual' or 'ai'"
            ) from e

    def _get_exam(self, exam_id: str) -> Exam:
        exam = self._exams.get_exam(exam_id)
        if exam is None:
            raise NotFoundError(f"Exam '{exam_id}' not found")
        return exam

    def _get_submission(self, exam_id: str, user_id: str) -> Submission:
        submission = self._submissions.get_submission(exam_id, user_id)
        if submission is None:
            raise NotFoundError(f"Submission of user '{user_id}' to exam '{exam_id}' not found")
        return submission

    def health_check(self) -> bool:
        return self._grader.health_check()
