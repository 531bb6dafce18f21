"""
Assessment Engine Services
"""

from .quota_guard import QuotaGuard, QuotaWindow
from .query_client import QueryRequest, ResilientQueryClient, RetryPolicy
from .analysis_adapter import AnalysisAdapter, AnalysisItem, decode_analysis
from .competitor_detector import CompetitorDetector
from .scoring_engine import ScoringEngine
from .assessment_pipeline import AssessmentPipeline, build_pipeline

__all__ = [
    "QuotaGuard",
    "QuotaWindow",
    "QueryRequest",
    "ResilientQueryClient",
    "RetryPolicy",
    "AnalysisAdapter",
    "AnalysisItem",
    "decode_analysis",
    "CompetitorDetector",
    "ScoringEngine",
    "AssessmentPipeline",
    "build_pipeline",
]
