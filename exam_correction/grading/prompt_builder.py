"""
Prompt builder for discursive and essay grading.

Constructs prompts that:
- State the rigor band the model must apply
- List exactly what is being looked for (key points or competences)
- Pin the maximum score
- Demand a single JSON object as output
"""

from decimal import Decimal
from typing import NamedTuple

from exam_correction.models import DiscursiveQuestion, EssayQuestion, EssayStyle


class CompetenceSpec(NamedTuple):
    """One scored dimension of an essay marking scheme."""

    name: str
    description: str
    max_score: Decimal


ESSAY_COMPETENCES: dict[EssayStyle, tuple[CompetenceSpec, ...]] = {
    EssayStyle.ENEM: (
        CompetenceSpec(
            "Competence 1 - Formal written language",
            "Spelling, accentuation, punctuation, agreement, government, verb tenses, "
            "pronoun placement, formal vocabulary and complete sentence structure.",
            Decimal("200"),
        ),
        CompetenceSpec(
            "Competence 2 - Understanding of the theme",
            "Stays within the proposed theme, states a clear thesis and uses pertinent, "
            "productive knowledge from several areas.",
            Decimal("200"),
        ),
        CompetenceSpec(
            "Competence 3 - Selection and organization of arguments",
            "Global coherence, logical progression and a recognisable text plan.",
            Decimal("200"),
        ),
        CompetenceSpec(
            "Competence 4 - Textual cohesion",
            "Argumentative connectives, referencing devices, paragraph organization and "
            "articulation between sentences.",
            Decimal("200"),
        ),
        CompetenceSpec(
            "Competence 5 - Intervention proposal",
            "A proposal respecting human rights that names agent, action, means, purpose "
            "and detail, tied to the argumentation.",
            Decimal("200"),
        ),
    ),
    EssayStyle.UERJ: (
        CompetenceSpec(
            "Criterion 1 - Adequacy to the theme",
            "Full grasp of the proposal, a coherent point of view and clear authorship.",
            Decimal("4"),
        ),
        CompetenceSpec(
            "Criterion 2 - Text type",
            "A genuine argumentative dissertation with articulated introduction, "
            "development and conclusion.",
            Decimal("4"),
        ),
        CompetenceSpec(
            "Criterion 3 - Sentence structure and cohesion",
            "Syntactic construction, varied connectives, referencing and fluency.",
            Decimal("4"),
        ),
        CompetenceSpec(
            "Criterion 4 - Modality",
            "Command of the standard language: spelling, punctuation, morphosyntax, "
            "agreement and vocabulary precision.",
            Decimal("4"),
        ),
        CompetenceSpec(
            "Criterion 5 - Paragraph quality",
            "Each paragraph develops one central idea over two or more articulated sentences.",
            Decimal("4"),
        ),
    ),
}


def describe_rigor(rigor: float) -> str:
    """Name the rigor band: lenient below 0.3, moderate below 0.6, rigorous above."""
    if rigor < 0.3:
        return "LENIENT"
    if rigor < 0.6:
        return "MODERATE"
    return "RIGOROUS"


class PromptBuilder:
    """
    Builds grading prompts for the external grading model.

    Prompts are deterministic for the same inputs so that two identical
    answers are always graded from the same instructions.
    """

    SYSTEM_PROMPT = """You are an exam corrector. You grade one learner answer at a time.

RULES:
1. Grade only against the expected elements listed in the request.
2. Apply the requested rigor band consistently.
3. Never award more than the stated maximum score.
4. Feedback must be specific, constructive and refer to the learner's own text.

OUTPUT RULES:
- Your output MUST be a single valid JSON object matching the requested format.
- Do not add any text before or after the JSON."""

    RIGOR_GUIDANCE = {
        "LENIENT": "Accept partial and indirect mentions of the expected elements.",
        "MODERATE": "Require clear mentions but tolerate small inaccuracies.",
        "RIGOROUS": "Require precision and completeness in every expected element.",
    }

    @staticmethod
    def get_system_prompt() -> str:
        """Get the system prompt shared by all grading requests."""
        return PromptBuilder.SYSTEM_PROMPT

    @staticmethod
    def build_discursive_prompt(
        question: DiscursiveQuestion, student_answer: str, rigor: float
    ) -> str:
        """
        Build the user prompt for a discursive answer.

        Args:
            question: The discursive question with its key points.
            student_answer: The learner's answer text.
            rigor: Strictness in [0, 1].

        Returns:
            The formatted user prompt.
        """
        band = describe_rigor(rigor)
        key_points = "\n".join(
            f"{i}. {kp.description} (weight: {kp.weight * 100:.0f}%)"
            for i, kp in enumerate(question.key_points, start=1)
        )

        return f"""Grade this discursive answer with {band} rigor ({rigor * 100:.0f}%).

## QUESTION
{question.statement}

## COMMAND
{question.command}

## EXPECTED KEY POINTS
{key_points}

## MAXIMUM SCORE
{question.max_score} points

## LEARNER ANSWER
{student_answer.strip() or "(blank answer)"}

## INSTRUCTIONS
1. Identify which key points the answer mentions.
2. For each key point, check that the learner shows real understanding.
3. {PromptBuilder.RIGOR_GUIDANCE[band]}
4. Give a score proportional to the key points found.
5. Write constructive, specific feedback (at most 200 words).

## OUTPUT FORMAT
{{
  "key_points_found": [1, 3],
  "score": <number from 0 to {question.max_score}>,
  "feedback": "<feedback>"
}}

key_points_found lists the 1-based numbers of the key points identified."""

    @staticmethod
    def build_essay_prompt(question: EssayQuestion, essay_text: str, rigor: float) -> str:
        """
        Build the user prompt for an essay.

        Args:
            question: The essay question with its theme and style.
            essay_text: The learner's essay.
            rigor: Strictness in [0, 1].

        Returns:
            The formatted user prompt.
        """
        band = describe_rigor(rigor)
        competences = ESSAY_COMPETENCES[question.essay_style]
        total = sum((c.max_score for c in competences), Decimal(0))

        competence_lines = "\n".join(
            f"{i}. {c.name} (0 to {c.max_score} points): {c.description}"
            for i, c in enumerate(competences, start=1)
        )

        if question.essay_style is EssayStyle.ENEM:
            scale_rule = "Competence scores must be multiples of 20."
        else:
            scale_rule = "Criterion scores may use halves (0, 0.5, 1.0, ... 4.0)."

        return f"""Grade this {question.essay_style.value.upper()}-style essay with {band} rigor ({rigor * 100:.0f}%).
{PromptBuilder.RIGOR_GUIDANCE[band]}

## THEME
{question.essay_theme}

## COMPETENCES
{competence_lines}

## LEARNER ESSAY
{essay_text.strip() or "(blank essay)"}

## INSTRUCTIONS
Evaluate each competence separately with examples taken from the essay.
{scale_rule}
The total is the sum of all competences (0 to {total}).

## OUTPUT FORMAT
{{
  "competences": [
    {{"number": 1, "score": <number>, "feedback": "<feedback>"}}
  ],
  "general_feedback": "<strengths, what cost points, and how to improve>"
}}

Include one entry per competence, numbered 1 to {len(competences)}."""
