"""
Exam Correction - scoring and correction engine for exam submissions.

Turns a learner's submitted answers into a final grade, tracks the
judgment of discursive and essay questions (manual or model-assisted),
and only publishes a final score once every required question is judged.
"""

__version__ = "1.0.0"
