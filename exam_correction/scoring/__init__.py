"""
Scoring Module.

Deterministic multiple-choice scoring and the final score combiner.
"""

from exam_correction.scoring.combiner import (
    WeightedPercentage,
    combine_percentages,
    compute_final_score,
    round2,
)
from exam_correction.scoring.multiple_choice import MultipleChoiceScore, score_multiple_choice

__all__ = [
    "MultipleChoiceScore",
    "WeightedPercentage",
    "combine_percentages",
    "compute_final_score",
    "round2",
    "score_multiple_choice",
]
