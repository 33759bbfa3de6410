"""
Pydantic models for the correction engine.

These models define the schemas for:
- Exams and their polymorphic questions
- Submissions, answers and the per-question corrections attached to them
- Results returned by the external grader and by the orchestrator

All models are frozen; a submission changes by being replaced with an
updated copy.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)


def utcnow() -> datetime:
    """Timezone-aware current time used for all timestamps."""
    return datetime.now(timezone.utc)


def to_decimal(v: Any) -> Any:
    """Convert numeric values to Decimal for precision."""
    if v is None or isinstance(v, Decimal):
        return v
    if isinstance(v, bool):
        raise ValueError("Boolean is not a valid score")
    if isinstance(v, (int, float, str)):
        try:
            return Decimal(str(v))
        except InvalidOperation as e:
            raise ValueError(f"Invalid numeric value: {v!r}") from e
    return v


# ==============================================================================
# Enumerations
# ==============================================================================


class ScoringMethod(str, Enum):
    """How the final score of an exam is produced."""

    NORMAL = "normal"  # Computed by this engine
    TRI = "tri"  # Item response theory, computed by an external process


class CorrectionMethod(str, Enum):
    """Who judges a discursive or essay answer."""

    AI = "ai"
    MANUAL = "manual"


class CorrectionStatus(str, Enum):
    """Submission-level correction state."""

    PENDING = "pending"
    CORRECTED = "corrected"


class EssayStyle(str, Enum):
    """Essay marking scheme."""

    ENEM = "enem"  # Five competences worth 200 each
    UERJ = "uerj"  # Five criteria worth 4 each


ESSAY_MAX_SCORES: dict[EssayStyle, Decimal] = {
    EssayStyle.ENEM: Decimal("1000"),
    EssayStyle.UERJ: Decimal("20"),
}

DEFAULT_DISCURSIVE_MAX_SCORE = Decimal("10")


# ==============================================================================
# Question Models
# ==============================================================================


class Alternative(BaseModel):
    """One option of a multiple-choice question."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    letter: str = Field(default="")
    text: str = Field(default="")
    is_correct: bool = Field(default=False)


class KeyPoint(BaseModel):
    """
    An expected element of a discursive answer.

    The weight is informational for the grading model; the model still
    returns a single score for the whole answer.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    weight: float = Field(default=1.0, ge=0.0, le=1.0)


class MultipleChoiceQuestion(BaseModel):
    """A question scored deterministically against its answer key."""

    model_config = ConfigDict(frozen=True)

    type: Literal["multiple-choice"] = "multiple-choice"
    id: str = Field(..., min_length=1)
    number: int = Field(..., ge=1)
    statement: str = Field(default="")
    command: str = Field(default="")
    alternatives: tuple[Alternative, ...] = Field(default=())

    @model_validator(mode="after")
    def validate_single_correct(self) -> "MultipleChoiceQuestion":
        """Ensure exactly one alternative is flagged correct."""
        flagged = [a for a in self.alternatives if a.is_correct]
        if len(flagged) != 1:
            raise ValueError(
                f"Question {self.id} must have exactly one correct alternative, "
                f"found {len(flagged)}"
            )
        return self

    @property
    def correct_alternative_id(self) -> str:
        """Id of the alternative flagged correct."""
        return next(a.id for a in self.alternatives if a.is_correct)


class DiscursiveQuestion(BaseModel):
    """A free-text question judged manually or by the grading model."""

    model_config = ConfigDict(frozen=True)

    type: Literal["discursive"] = "discursive"
    id: str = Field(..., min_length=1)
    number: int = Field(..., ge=1)
    statement: str = Field(default="")
    command: str = Field(default="")
    key_points: tuple[KeyPoint, ...] = Field(default=())
    max_score: Decimal = Field(default=DEFAULT_DISCURSIVE_MAX_SCORE, gt=0)

    @field_validator("max_score", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)


class EssayQuestion(BaseModel):
    """
    An essay graded per competence.

    When max_score is not given it follows the essay style: 1000 for ENEM,
    20 for UERJ.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["essay"] = "essay"
    id: str = Field(..., min_length=1)
    number: int = Field(..., ge=1)
    statement: str = Field(default="")
    essay_theme: str = Field(default="")
    essay_style: EssayStyle = Field(default=EssayStyle.ENEM)
    essay_correction_method: CorrectionMethod = Field(default=CorrectionMethod.MANUAL)
    essay_ai_rigor: float | None = Field(default=None, ge=0.0, le=1.0)
    max_score: Decimal | None = Field(default=None, gt=0)

    @field_validator("max_score", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)

    @model_validator(mode="after")
    def set_default_max_score(self) -> "EssayQuestion":
        """Fill max_score from the essay style."""
        if self.max_score is None:
            # Use object.__setattr__ because model is frozen
            object.__setattr__(self, "max_score", ESSAY_MAX_SCORES[self.essay_style])
        return self


Question = Annotated[
    Union[MultipleChoiceQuestion, DiscursiveQuestion, EssayQuestion],
    Field(discriminator="type"),
]


class Exam(BaseModel):
    """
    Exam configuration as seen by the correction engine.

    Question order defines numbering only; it carries no scoring weight.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    title: str = Field(default="")
    questions: tuple[Question, ...] = Field(default=())
    scoring_method: ScoringMethod = Field(default=ScoringMethod.NORMAL)
    total_points: Decimal | None = Field(default=None, gt=0)
    discursive_correction_method: CorrectionMethod = Field(default=CorrectionMethod.MANUAL)
    ai_rigor: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("total_points", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)

    @model_validator(mode="after")
    def validate_unique_question_ids(self) -> "Exam":
        """Ensure no duplicate question ids."""
        ids = [q.id for q in self.questions]
        if len(ids) != len(set(ids)):
            duplicates = {i for i in ids if ids.count(i) > 1}
            raise ValueError(f"Duplicate question ids found: {duplicates}")
        return self

    def find_question(self, question_id: str) -> Question | None:
        return next((q for q in self.questions if q.id == question_id), None)

    @property
    def multiple_choice_questions(self) -> list[MultipleChoiceQuestion]:
        return [q for q in self.questions if isinstance(q, MultipleChoiceQuestion)]


# ==============================================================================
# Submission Models
# ==============================================================================


class UserAnswer(BaseModel):
    """What a learner answered for one question."""

    model_config = ConfigDict(frozen=True)

    question_id: str = Field(..., min_length=1)
    selected_alternative: str | None = Field(default=None)
    crossed_alternatives: tuple[str, ...] = Field(default=())
    discursive_text: str | None = Field(default=None)

    @property
    def has_text(self) -> bool:
        return bool(self.discursive_text and self.discursive_text.strip())


class EssayCompetence(BaseModel):
    """Score for one competence (ENEM) or criterion (UERJ) of an essay."""

    model_config = ConfigDict(frozen=True)

    name: str
    score: Decimal = Field(..., ge=0)
    max_score: Decimal = Field(..., gt=0)
    feedback: str = Field(default="")

    @field_validator("score", "max_score", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)


class Correction(BaseModel):
    """
    The judgment of one question of one submission.

    A submission holds at most one correction per question id.
    """

    model_config = ConfigDict(frozen=True)

    question_id: str = Field(..., min_length=1)
    score: Decimal = Field(..., ge=0)
    max_score: Decimal = Field(..., gt=0)
    feedback: str = Field(default="")
    method: CorrectionMethod
    corrected_at: datetime = Field(default_factory=utcnow)
    corrected_by: str | None = Field(default=None)
    key_points_found: tuple[str, ...] | None = Field(default=None)
    essay_competences: tuple[EssayCompetence, ...] | None = Field(default=None)
    essay_general_feedback: str | None = Field(default=None)

    @field_validator("score", "max_score", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)

    @model_validator(mode="after")
    def validate_score_range(self) -> "Correction":
        """Ensure the score doesn't exceed the max score."""
        if self.score > self.max_score:
            raise ValueError(
                f"Score ({self.score}) cannot exceed max score ({self.max_score})"
            )
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def percentage(self) -> Decimal:
        """Score as a percentage of the max score."""
        return self.score / self.max_score * 100


class Submission(BaseModel):
    """
    One learner's submission to one exam.

    Answers are fixed at submit time. Corrections, the derived scores and
    the correction status are only changed by the orchestrator.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    exam_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    user_name: str | None = Field(default=None)
    answers: tuple[UserAnswer, ...] = Field(default=())
    corrections: tuple[Correction, ...] = Field(default=())
    discursive_score: Decimal | None = Field(default=None)
    correction_status: CorrectionStatus | None = Field(default=None)
    score: Decimal | None = Field(default=None)
    submitted_at: datetime = Field(default_factory=utcnow)
    correction_notified_at: datetime | None = Field(default=None)

    @field_validator("discursive_score", "score", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)

    def find_answer(self, question_id: str) -> UserAnswer | None:
        return next((a for a in self.answers if a.question_id == question_id), None)

    def find_correction(self, question_id: str) -> Correction | None:
        return next((c for c in self.corrections if c.question_id == question_id), None)


class Notification(BaseModel):
    """Event sent to a learner when their submission is fully corrected."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    exam_id: str
    exam_title: str = Field(default="")
    type: Literal["correction_ready"] = "correction_ready"
    message: str
    created_at: datetime = Field(default_factory=utcnow)


# ==============================================================================
# Grading Result Models
# ==============================================================================


class DiscursiveGrade(BaseModel):
    """Result of grading one discursive answer with the external grader."""

    model_config = ConfigDict(frozen=True)

    score: Decimal = Field(..., ge=0)
    max_score: Decimal = Field(..., gt=0)
    feedback: str
    key_points_found: tuple[str, ...] = Field(default=())

    @field_validator("score", "max_score", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)


class EssayGrade(BaseModel):
    """Result of grading one essay with the external grader."""

    model_config = ConfigDict(frozen=True)

    score: Decimal = Field(..., ge=0)
    max_score: Decimal = Field(..., gt=0)
    competences: tuple[EssayCompetence, ...]
    general_feedback: str = Field(default="")

    @field_validator("score", "max_score", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Any:
        return to_decimal(v)


# ==============================================================================
# Orchestrator Result Models
# ==============================================================================


class SubmitResult(BaseModel):
    """What the submit pipeline reports back to the learner."""

    model_config = ConfigDict(frozen=True)

    submission_id: str
    score: Decimal | None = None
    correction_status: CorrectionStatus | None = None
    message: str = ""


class CorrectionOutcome(BaseModel):
    """Result of correcting a single question."""

    model_config = ConfigDict(frozen=True)

    correction: Correction
    all_corrected: bool
    discursive_score: Decimal
    correction_status: CorrectionStatus | None
    score: Decimal | None = None


class BulkCorrectionReport(BaseModel):
    """Result of a bulk model correction of a whole submission."""

    model_config = ConfigDict(frozen=True)

    corrected: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    discursive_score: Decimal | None = None
    errors: tuple[str, ...] = Field(default=())
    # Graded, but another correction was filed for the question meanwhile
    skipped: tuple[str, ...] = Field(default=())
    all_corrected: bool = False
    correction_status: CorrectionStatus | None = None
    score: Decimal | None = None
