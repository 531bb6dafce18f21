"""
Celery Tasks
"""

from .assessment_tasks import run_visibility_assessment, score_analyses

__all__ = [
    "run_visibility_assessment",
    "score_analyses",
]
