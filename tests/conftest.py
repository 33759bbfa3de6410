"""
Pytest configuration and fixtures.

Provides common test fixtures for all test modules.
"""

import json
import tempfile
import threading
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Generator

import pytest

from exam_correction.config import Settings
from exam_correction.grading import ExternalGrader
from exam_correction.models import (
    Alternative,
    CorrectionMethod,
    DiscursiveGrade,
    DiscursiveQuestion,
    EssayCompetence,
    EssayGrade,
    EssayQuestion,
    EssayStyle,
    Exam,
    KeyPoint,
    MultipleChoiceQuestion,
    ScoringMethod,
    UserAnswer,
)
from exam_correction.orchestrator import CorrectionOrchestrator
from exam_correction.store import InMemoryStore


# ==============================================================================
# Directory Fixtures
# ==============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ==============================================================================
# Scripted Grader
# ==============================================================================


class ScriptedGrader(ExternalGrader):
    """
    Grader returning scripted results per question id.

    A scripted Exception is raised instead of returned. Unscripted questions
    get 80% of their max score.
    """

    def __init__(self, results: dict[str, Any] | None = None):
        self.results = dict(results or {})
        self.calls: list[tuple[str, str, float]] = []
        self.barrier: threading.Barrier | None = None
        self._lock = threading.Lock()

    def _next(self, question: Any, answer_text: str, rigor: float) -> Any:
        with self._lock:
            self.calls.append((question.id, answer_text, rigor))
        if self.barrier is not None:
            self.barrier.wait(timeout=5)
        result = self.results.get(question.id)
        if isinstance(result, Exception):
            raise result
        return result

    def grade_discursive(
        self, question: DiscursiveQuestion, answer_text: str, rigor: float
    ) -> DiscursiveGrade:
        result = self._next(question, answer_text, rigor)
        return result or DiscursiveGrade(
            score=question.max_score * Decimal("0.8"),
            max_score=question.max_score,
            feedback=f"Solid answer to question {question.number}",
            key_points_found=tuple(kp.id for kp in question.key_points[:1]),
        )

    def grade_essay(self, question: EssayQuestion, answer_text: str, rigor: float) -> EssayGrade:
        result = self._next(question, answer_text, rigor)
        max_score = question.max_score or Decimal("1000")
        return result or EssayGrade(
            score=max_score * Decimal("0.8"),
            max_score=max_score,
            competences=(
                EssayCompetence(
                    name="Competence 1",
                    score=max_score * Decimal("0.8"),
                    max_score=max_score,
                    feedback="Well argued",
                ),
            ),
            general_feedback="Good essay overall",
        )


@pytest.fixture
def grader() -> ScriptedGrader:
    """Grader with no scripted failures."""
    return ScriptedGrader()


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Create test settings with mocked values."""
    return Settings(
        grader_api_key="test-api-key-for-testing",
        grader_base_url="https://test.api.local/",
        grader_model="test-model",
        grader_timeout_seconds=5.0,
        default_rigor=0.45,
        store_path=temp_dir / "state.json",
    )


# ==============================================================================
# Question Fixtures
# ==============================================================================


def _multiple_choice(question_id: str, number: int, correct: str) -> MultipleChoiceQuestion:
    return MultipleChoiceQuestion(
        id=question_id,
        number=number,
        statement=f"Statement {number}",
        alternatives=tuple(
            Alternative(id=letter, letter=letter.upper(), text=f"Option {letter}", is_correct=letter == correct)
            for letter in ("a", "b", "c", "d")
        ),
    )


def _discursive(question_id: str, number: int) -> DiscursiveQuestion:
    return DiscursiveQuestion(
        id=question_id,
        number=number,
        statement="Explain how photosynthesis stores energy.",
        command="Answer in up to ten lines.",
        key_points=(
            KeyPoint(id=f"{question_id}-kp1", description="Light energy is captured by chlorophyll", weight=0.5),
            KeyPoint(id=f"{question_id}-kp2", description="Energy is stored as glucose", weight=0.5),
        ),
        max_score=Decimal("10"),
    )


@pytest.fixture
def discursive_question() -> DiscursiveQuestion:
    """A discursive question with two key points."""
    return _discursive("q3", 3)


@pytest.fixture
def enem_essay() -> EssayQuestion:
    """An ENEM-style essay graded manually."""
    return EssayQuestion(
        id="essay-enem",
        number=2,
        essay_theme="Challenges of digital inclusion",
        essay_style=EssayStyle.ENEM,
        essay_correction_method=CorrectionMethod.MANUAL,
    )


@pytest.fixture
def uerj_essay() -> EssayQuestion:
    """A UERJ-style essay graded by the model."""
    return EssayQuestion(
        id="essay-uerj",
        number=3,
        essay_theme="Authorship in the age of automation",
        essay_style=EssayStyle.UERJ,
        essay_correction_method=CorrectionMethod.AI,
        essay_ai_rigor=0.7,
    )


# ==============================================================================
# Exam Fixtures
# ==============================================================================


@pytest.fixture
def mixed_exam(discursive_question: DiscursiveQuestion) -> Exam:
    """Two multiple-choice questions and one discursive question, manual correction."""
    return Exam(
        id="exam-mixed",
        title="Biology Midterm",
        questions=(_multiple_choice("q1", 1, "a"), _multiple_choice("q2", 2, "b"), discursive_question),
        scoring_method=ScoringMethod.NORMAL,
        total_points=Decimal("100"),
    )


@pytest.fixture
def discursive_exam() -> Exam:
    """Three discursive questions, manual correction by default."""
    return Exam(
        id="exam-disc",
        title="Chemistry Essay Questions",
        questions=(_discursive("d1", 1), _discursive("d2", 2), _discursive("d3", 3)),
    )


@pytest.fixture
def auto_exam() -> Exam:
    """Three discursive questions corrected by the model at submit time."""
    return Exam(
        id="exam-auto",
        title="Physics Quiz",
        questions=(_discursive("d1", 1), _discursive("d2", 2), _discursive("d3", 3)),
        discursive_correction_method=CorrectionMethod.AI,
        ai_rigor=0.6,
    )


@pytest.fixture
def multiple_choice_exam() -> Exam:
    """Multiple-choice only exam on a 10-point scale."""
    return Exam(
        id="exam-mc",
        title="Vocabulary",
        questions=(_multiple_choice("q1", 1, "a"), _multiple_choice("q2", 2, "b")),
        total_points=Decimal("10"),
    )


@pytest.fixture
def tri_exam(discursive_question: DiscursiveQuestion) -> Exam:
    """Exam scored by item response theory."""
    return Exam(
        id="exam-tri",
        title="Mock ENEM",
        questions=(_multiple_choice("q1", 1, "a"), discursive_question),
        scoring_method=ScoringMethod.TRI,
    )


@pytest.fixture
def essay_exam(enem_essay: EssayQuestion, uerj_essay: EssayQuestion) -> Exam:
    """One multiple-choice question, one manual essay and one model-graded essay."""
    return Exam(
        id="exam-essay",
        title="Writing Test",
        questions=(_multiple_choice("q1", 1, "a"), enem_essay, uerj_essay),
    )


# ==============================================================================
# Answer Fixtures
# ==============================================================================


@pytest.fixture
def mixed_answers() -> list[UserAnswer]:
    """q1 right, q2 wrong, q3 answered in text."""
    return [
        UserAnswer(question_id="q1", selected_alternative="a"),
        UserAnswer(question_id="q2", selected_alternative="a"),
        UserAnswer(
            question_id="q3",
            discursive_text="Chlorophyll captures light and the plant stores it as glucose.",
        ),
    ]


@pytest.fixture
def discursive_answers() -> list[dict[str, Any]]:
    """Text answers for d1, d2 and d3."""
    return [
        {"question_id": f"d{i}", "discursive_text": f"Answer to discursive question {i}"}
        for i in (1, 2, 3)
    ]


@pytest.fixture
def essay_answers() -> list[UserAnswer]:
    return [
        UserAnswer(question_id="q1", selected_alternative="a"),
        UserAnswer(question_id="essay-enem", discursive_text="Digital inclusion requires ..."),
        UserAnswer(question_id="essay-uerj", discursive_text="Authorship means ..."),
    ]


# ==============================================================================
# Engine Fixtures
# ==============================================================================


@pytest.fixture
def store(
    mixed_exam: Exam,
    discursive_exam: Exam,
    auto_exam: Exam,
    multiple_choice_exam: Exam,
    tri_exam: Exam,
    essay_exam: Exam,
) -> InMemoryStore:
    """In-memory store holding every sample exam."""
    store = InMemoryStore()
    for exam in (mixed_exam, discursive_exam, auto_exam, multiple_choice_exam, tri_exam, essay_exam):
        store.add_exam(exam)
    return store


@pytest.fixture
def make_orchestrator(
    store: InMemoryStore, test_settings: Settings
) -> Callable[[ExternalGrader], CorrectionOrchestrator]:
    """Build an orchestrator over the shared store with a given grader."""

    def factory(grader: ExternalGrader) -> CorrectionOrchestrator:
        return CorrectionOrchestrator(store, store, store, grader=grader, settings=test_settings)

    return factory


@pytest.fixture
def orchestrator(
    make_orchestrator: Callable[[ExternalGrader], CorrectionOrchestrator], grader: ScriptedGrader
) -> CorrectionOrchestrator:
    """Orchestrator backed by the scripted grader."""
    return make_orchestrator(grader)


# ==============================================================================
# LLM Response Fixtures
# ==============================================================================


@pytest.fixture
def discursive_llm_response() -> str:
    """Sample grading model reply for a discursive answer."""
    return json.dumps(
        {
            "key_points_found": [1, 2],
            "score": 7.5,
            "feedback": "Mentions chlorophyll and glucose storage, but lacks detail on ATP.",
        }
    )


@pytest.fixture
def enem_llm_response() -> str:
    """Sample grading model reply for an ENEM essay."""
    return json.dumps(
        {
            "competences": [
                {"number": 1, "score": 160, "feedback": "Few grammar slips."},
                {"number": 2, "score": 180, "feedback": "Theme fully addressed."},
                {"number": 3, "score": 160, "feedback": "Clear progression."},
                {"number": 4, "score": 140, "feedback": "Repetitive connectives."},
                {"number": 5, "score": 160, "feedback": "Proposal lacks detail."},
            ],
            "general_feedback": "Consistent essay; work on cohesion.",
        }
    )
