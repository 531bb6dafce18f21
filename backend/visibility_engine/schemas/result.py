"""
Assessment Result Schema
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .analysis import (
    ClassificationStats,
    CompetitorProfile,
    QuestionAnalysis,
    VisibilityScore,
)
from .assessment import AnswerRecord, CompanyIdentity


class AssessmentResult(BaseModel):
    """Output of one completed (or cancelled) assessment run"""
    assessment_id: str
    company: CompanyIdentity
    answers: List[AnswerRecord] = Field(default_factory=list)
    analyses: List[QuestionAnalysis] = Field(default_factory=list)
    competitors: List[CompetitorProfile] = Field(default_factory=list)
    visibility_score: VisibilityScore
    citation_stats: ClassificationStats = Field(default_factory=ClassificationStats)
    started_at: datetime
    completed_at: datetime
    processing_time_ms: int = 0
    cancelled: bool = False
    degraded_answers: int = 0
    fallback_analyses: int = 0
    error: Optional[str] = None
