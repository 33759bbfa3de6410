"""
Error taxonomy of the correction engine.

Every error carries the HTTP-like status class a calling application
should map it to. Not-found and invalid-input errors are always raised
before anything is written.
"""

from typing import Sequence


class CorrectionError(Exception):
    """Base class for all engine errors."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(CorrectionError):
    """Raised when an exam, submission, question or answer does not exist."""

    status_code = 404


class MissingAnswerError(NotFoundError):
    """Raised when the learner gave no answer text for a question."""

    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(f"Answer not found for question '{question_id}'")


class InvalidCorrectionError(CorrectionError):
    """Raised when a correction request is malformed or not applicable."""

    status_code = 400


class DuplicateSubmissionError(CorrectionError):
    """Raised when a learner submits the same exam twice."""

    status_code = 409


class GradingFailedError(CorrectionError):
    """
    Raised when the external grader fails during a single-question correction.

    The submission is left untouched.
    """

    status_code = 502

    def __init__(self, question_id: str, cause: Exception):
        self.question_id = question_id
        self.cause = cause
        super().__init__(f"Automatic correction failed for question '{question_id}': {cause}")


class BulkCorrectionFailedError(CorrectionError):
    """Raised when a bulk correction produced no correction at all."""

    status_code = 502

    def __init__(self, errors: Sequence[str], total: int):
        self.errors = list(errors)
        self.total = total
        message = f"No question was corrected ({total} attempted)"
        if self.errors:
            message += ":\n" + "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(message)
