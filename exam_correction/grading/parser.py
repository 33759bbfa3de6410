"""
Response parser for grading model output.

Parses the JSON reply from the grading model and bounds it to the
question: scores are clamped to the maximum, key point numbers are
mapped to key point ids and unknown numbers are dropped.
"""

import json
import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from exam_correction.grading.llm_client import GraderError
from exam_correction.grading.prompt_builder import ESSAY_COMPETENCES
from exam_correction.models import (
    DiscursiveGrade,
    DiscursiveQuestion,
    EssayCompetence,
    EssayGrade,
    EssayQuestion,
    EssayStyle,
)

logger = logging.getLogger(__name__)


class GradingResponseError(GraderError):
    """Raised when the grading model's reply cannot be interpreted."""

    def __init__(self, message: str, raw_response: str | None = None):
        self.raw_response = raw_response
        super().__init__(message)


def _clamp(value: Decimal, maximum: Decimal) -> Decimal:
    return min(max(value, Decimal(0)), maximum)


class ResponseParser:
    """
    Parses and bounds grading model responses.

    Ensures:
    1. Response contains a JSON object
    2. Required fields are present and well typed
    3. Scores are within [0, max]
    """

    def parse_discursive(self, response: str, question: DiscursiveQuestion) -> DiscursiveGrade:
        """
        Parse a discursive grading reply.

        Args:
            response: Raw model response (expected JSON).
            question: The question that was graded.

        Returns:
            The bounded grade.

        Raises:
            GradingResponseError: If the reply is malformed.
        """
        data = self._load(response)

        found = data.get("key_points_found")
        if not isinstance(found, list):
            raise GradingResponseError("Invalid field: key_points_found", raw_response=response)

        feedback = data.get("feedback")
        if not isinstance(feedback, str):
            raise GradingResponseError("Invalid field: feedback", raw_response=response)

        if "score" not in data or isinstance(data["score"], bool):
            raise GradingResponseError("Invalid field: score", raw_response=response)
        score = self._parse_decimal(data["score"], "score", response)

        key_point_ids: list[str] = []
        for number in found:
            if isinstance(number, bool) or not isinstance(number, int):
                continue
            if 1 <= number <= len(question.key_points):
                key_point_ids.append(question.key_points[number - 1].id)

        bounded = _clamp(score, question.max_score).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
        if bounded != score:
            logger.debug("Clamped score %s to %s for question %s", score, bounded, question.id)

        return DiscursiveGrade(
            score=bounded,
            max_score=question.max_score,
            feedback=feedback.strip(),
            key_points_found=tuple(key_point_ids),
        )

    def parse_essay(self, response: str, question: EssayQuestion) -> EssayGrade:
        """
        Parse an essay grading reply.

        Competences missing from the reply score zero with empty feedback.

        Args:
            response: Raw model response (expected JSON).
            question: The essay question that was graded.

        Returns:
            The grade with one entry per competence of the essay style, its
            total scaled to the question's max score when that differs.

        Raises:
            GradingResponseError: If the reply is malformed.
        """
        data = self._load(response)

        items = data.get("competences", [])
        if not isinstance(items, list):
            raise GradingResponseError("competences must be a list", raw_response=response)

        by_number: dict[int, dict[str, Any]] = {}
        for i, item in enumerate(items):
            if not isinstance(item, dict):
                raise GradingResponseError(
                    f"competences[{i}] must be an object", raw_response=response
                )
            number = item.get("number", i + 1)
            if isinstance(number, int) and not isinstance(number, bool):
                by_number.setdefault(number, item)

        specs = ESSAY_COMPETENCES[question.essay_style]
        competences: list[EssayCompetence] = []
        for number, spec in enumerate(specs, start=1):
            item = by_number.get(number, {})
            raw_score = item.get("score") or 0
            score = self._parse_decimal(raw_score, f"competence {number} score", response)
            competences.append(
                EssayCompetence(
                    name=spec.name,
                    score=_clamp(score, spec.max_score),
                    max_score=spec.max_score,
                    feedback=str(item.get("feedback") or ""),
                )
            )

        total = sum((c.score for c in competences), Decimal(0))
        if question.essay_style is EssayStyle.UERJ:
            total = total.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)

        max_score = sum((c.max_score for c in specs), Decimal(0))
        if question.max_score is not None and question.max_score != max_score:
            # Competences stay on the style's scale, the total follows the question
            total = (total * question.max_score / max_score).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
            max_score = question.max_score

        return EssayGrade(
            score=total,
            max_score=max_score,
            competences=tuple(competences),
            general_feedback=str(data.get("general_feedback") or "").strip(),
        )

    def _load(self, response: str) -> dict[str, Any]:
        json_str = self._extract_json(response)
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise GradingResponseError(
                f"Invalid JSON in response: {e}", raw_response=response
            ) from e
        if not isinstance(data, dict):
            raise GradingResponseError("Response JSON is not an object", raw_response=response)
        return data

    def _extract_json(self, response: str) -> str:
        """
        Extract JSON from response, handling common formats.

        Args:
            response: Raw response text.

        Returns:
            Extracted JSON string.
        """
        # Remove markdown code block if present
        json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", response)
        if json_match:
            return json_match.group(1).strip()

        brace_start = response.find("{")
        if brace_start == -1:
            raise GradingResponseError("No JSON object found in response", raw_response=response)

        depth = 0
        for i, char in enumerate(response[brace_start:], start=brace_start):
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return response[brace_start : i + 1]

        raise GradingResponseError("Unclosed JSON object in response", raw_response=response)

    def _parse_decimal(self, value: Any, field_name: str, raw_response: str) -> Decimal:
        try:
            if isinstance(value, Decimal):
                result = value
            else:
                result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise GradingResponseError(
                f"Invalid numeric value for {field_name}: {value}", raw_response=raw_response
            ) from e
        if not result.is_finite():
            raise GradingResponseError(
                f"Invalid numeric value for {field_name}: {value}", raw_response=raw_response
            )
        return result
