"""
Assessment Routes
"""

from typing import Any, Dict, List, Optional

from celery.result import AsyncResult
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from visibility_engine.errors import PipelineFailedError
from visibility_engine.schemas import AssessmentRequest, QuestionAnalysis, VisibilityScore
from visibility_engine.services.assessment_pipeline import AssessmentPipeline
from visibility_engine.services.scoring_engine import ScoringEngine
from visibility_engine.workers.celery_app import celery_app

router = APIRouter()


class AssessmentQueued(BaseModel):
    """Accepted assessment run"""
    task_id: str
    status: str = "queued"
    questions: int


class AssessmentStatus(BaseModel):
    """State of a queued assessment run"""
    task_id: str
    state: str
    progress: Optional[Dict[str, Any]] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[Any] = None


@router.post("", response_model=AssessmentQueued, status_code=status.HTTP_202_ACCEPTED)
async def create_assessment(request: AssessmentRequest):
    """
    Queue an assessment run.
    Returns immediately with a task id for status polling.
    """
    try:
        AssessmentPipeline.validate_request(request)
    except PipelineFailedError as e:
        raise HTTPException(status_code=422, detail=e.to_dict())

    from visibility_engine.workers.tasks.assessment_tasks import run_visibility_assessment

    task_result = run_visibility_assessment.delay(request.model_dump(mode="json"))
    return AssessmentQueued(task_id=task_result.id, questions=len(request.questions))


@router.get("/{task_id}", response_model=AssessmentStatus)
async def get_assessment(task_id: str):
    """Report progress, result or failure of a queued run"""
    task_result = AsyncResult(task_id, app=celery_app)
    state = task_result.state

    if state == "PROGRESS":
        return AssessmentStatus(task_id=task_id, state=state, progress=task_result.info)

    if state == "SUCCESS":
        payload = task_result.result or {}
        if not payload.get("success"):
            return AssessmentStatus(task_id=task_id, state="FAILED", error=payload.get("error"))
        return AssessmentStatus(task_id=task_id, state=state, result=payload.get("result"))

    if state == "FAILURE":
        return AssessmentStatus(task_id=task_id, state=state, error=str(task_result.info))

    return AssessmentStatus(task_id=task_id, state=state)


@router.post("/score", response_model=VisibilityScore)
async def score_analyses(analyses: List[QuestionAnalysis]):
    """Score already analyzed questions synchronously"""
    return ScoringEngine().score(analyses)
