"""
External grader adapter.

Defines the contract the orchestrator uses to have discursive answers and
essays judged out of process, and the implementation backed by a grading
model over an OpenAI-compatible API.
"""

import logging
from abc import ABC, abstractmethod

from exam_correction.config import Settings, get_settings
from exam_correction.grading.llm_client import GraderError, LLMClient
from exam_correction.grading.parser import ResponseParser
from exam_correction.grading.prompt_builder import PromptBuilder
from exam_correction.models import (
    DiscursiveGrade,
    DiscursiveQuestion,
    EssayGrade,
    EssayQuestion,
)

logger = logging.getLogger(__name__)


class ExternalGrader(ABC):
    """
    Out-of-process judgment of free-text answers.

    Implementations raise GraderError (or a subclass) on any failure and
    must bound the time a single call can take.
    """

    @abstractmethod
    def grade_discursive(
        self, question: DiscursiveQuestion, answer_text: str, rigor: float
    ) -> DiscursiveGrade:
        """
        Grade a discursive answer.

        Args:
            question: The question with its key points and max score.
            answer_text: The learner's answer.
            rigor: Strictness in [0, 1].

        Returns:
            Score in [0, max_score], feedback and the key point ids found.

        Raises:
            GraderError: If grading fails.
        """
        ...

    @abstractmethod
    def grade_essay(self, question: EssayQuestion, answer_text: str, rigor: float) -> EssayGrade:
        """
        Grade an essay.

        Args:
            question: The essay question with theme and style.
            answer_text: The learner's essay.
            rigor: Strictness in [0, 1].

        Returns:
            Total score, per-competence breakdown and general feedback.

        Raises:
            GraderError: If grading fails.
        """
        ...

    def health_check(self) -> bool:
        return True


class LLMGrader(ExternalGrader):
    """Grader backed by a chat completions model."""

    def __init__(self, settings: Settings | None = None, client: LLMClient | None = None):
        """
        Initialize the grader.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
            client: LLM client to use. Built from settings if not provided.
        """
        self._settings = settings or get_settings()
        self._llm_client = client or LLMClient(self._settings)
        self._response_parser = ResponseParser()

    def grade_discursive(
        self, question: DiscursiveQuestion, answer_text: str, rigor: float
    ) -> DiscursiveGrade:
        if not question.key_points:
            raise GraderError(f"Question {question.number} has no key points defined")

        raw_response = self._llm_client.generate(
            system_prompt=PromptBuilder.get_system_prompt(),
            user_prompt=PromptBuilder.build_discursive_prompt(question, answer_text, rigor),
            temperature=self._settings.grader_temperature,
        )
        grade = self._response_parser.parse_discursive(raw_response, question)
        logger.debug("Graded discursive question %s: %s/%s", question.id, grade.score, grade.max_score)
        return grade

    def grade_essay(self, question: EssayQuestion, answer_text: str, rigor: float) -> EssayGrade:
        if not question.essay_theme.strip():
            raise GraderError(f"Essay {question.number} has no theme defined")

        raw_response = self._llm_client.generate(
            system_prompt=PromptBuilder.get_system_prompt(),
            user_prompt=PromptBuilder.build_essay_prompt(question, answer_text, rigor),
            temperature=self._settings.essay_temperature,
        )
        grade = self._response_parser.parse_essay(raw_response, question)
        logger.debug("Graded essay %s: %s/%s", question.id, grade.score, grade.max_score)
        return grade

    def health_check(self) -> bool:
        """
        Check if the grading model is reachable.

        Returns:
            True if the API answers.
        """
        return self._llm_client.health_check()
