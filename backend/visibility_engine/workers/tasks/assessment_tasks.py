"""
Assessment Tasks
Runs visibility assessments on Celery workers
"""

import asyncio
import time
from typing import Dict, List, Optional

from celery.utils.log import get_task_logger
from pydantic import ValidationError

from visibility_engine.errors import ErrorCode, PipelineFailedError
from visibility_engine.schemas import AssessmentRequest, ProgressEvent, QuestionAnalysis
from visibility_engine.services.assessment_pipeline import build_pipeline
from visibility_engine.services.quota_guard import QuotaGuard
from visibility_engine.services.scoring_engine import ScoringEngine
from visibility_engine.workers.celery_app import celery_app

logger = get_task_logger(__name__)

# One quota window per worker process, shared by every run it executes
_quota_guard: Optional[QuotaGuard] = None


def get_quota_guard() -> QuotaGuard:
    global _quota_guard
    if _quota_guard is None:
        _quota_guard = QuotaGuard.from_settings()
    return _quota_guard


def run_async(coro):
    """Run async function in sync context"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _quota_exhausted(result) -> bool:
    return bool(result.answers) and all(
        a.error_code == ErrorCode.RATE_LIMIT_EXCEEDED for a in result.answers
    )


@celery_app.task(
    bind=True,
    name="visibility_engine.workers.tasks.assessment_tasks.run_visibility_assessment",
    max_retries=3,
    default_retry_delay=60,
)
def run_visibility_assessment(self, payload: Dict) -> Dict:
    """
    Run one assessment.

    Args:
        payload: AssessmentRequest as a JSON-compatible dict

    Returns:
        Dict with success flag and either the result or the error
    """
    try:
        request = AssessmentRequest.model_validate(payload)
    except ValidationError as e:
        logger.error(f"Rejected assessment payload: {e.error_count()} validation errors")
        return {
            "success": False,
            "error": {"code": ErrorCode.PIPELINE_FAILED.value, "message": str(e)},
        }

    quota = get_quota_guard()
    pipeline = build_pipeline(quota)

    def report(event: ProgressEvent) -> None:
        self.update_state(state="PROGRESS", meta=event.model_dump(mode="json"))

    try:
        result = run_async(pipeline.run(request, on_progress=report))
    except PipelineFailedError as e:
        logger.error(f"Assessment failed for {request.company.name}: {e.message}")
        return {"success": False, "error": e.to_dict()}

    if _quota_exhausted(result):
        window = quota.status()
        countdown = max(1, int((window.retry_after or time.time() + 60) - time.time()))
        logger.warning(f"Quota exhausted, retrying assessment in {countdown}s")
        raise self.retry(countdown=countdown)

    logger.info(
        f"Assessment {result.assessment_id} for {request.company.name}: "
        f"overall={result.visibility_score.overall}"
    )
    return {"success": True, "result": result.model_dump(mode="json")}


@celery_app.task(
    name="visibility_engine.workers.tasks.assessment_tasks.score_analyses",
)
def score_analyses(analyses: List[Dict]) -> Dict:
    """
    Score previously computed question analyses.

    Args:
        analyses: QuestionAnalysis objects as dicts

    Returns:
        VisibilityScore as a dict
    """
    parsed = [QuestionAnalysis.model_validate(item) for item in analyses]
    return ScoringEngine().score(parsed).model_dump(mode="json")
