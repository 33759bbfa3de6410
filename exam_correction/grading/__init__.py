"""
Grading Module.

External grader contract and its grading-model implementation.
"""

from exam_correction.grading.adapter import ExternalGrader, LLMGrader
from exam_correction.grading.llm_client import GraderError, LLMClient
from exam_correction.grading.parser import GradingResponseError, ResponseParser
from exam_correction.grading.prompt_builder import PromptBuilder

__all__ = [
    "ExternalGrader",
    "GraderError",
    "GradingResponseError",
    "LLMClient",
    "LLMGrader",
    "PromptBuilder",
    "ResponseParser",
]
