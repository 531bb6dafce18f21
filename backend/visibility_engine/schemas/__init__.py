"""
Pydantic Schemas for the assessment engine and its API
"""

from .assessment import (
    AnswerRecord,
    AssessmentRequest,
    CompanyIdentity,
    CompetitorSeed,
    ProgressEvent,
    ProgressStage,
    Question,
    QuestionType,
    normalize_domain,
)
from .analysis import (
    AnalysisInsights,
    Citation,
    CitationBreakdown,
    CitationBucket,
    ClassificationStats,
    CompetitorMention,
    CompetitorProfile,
    DetectionSource,
    MentionAnalysis,
    MentionDetected,
    MentionPosition,
    NotDetected,
    QuestionAnalysis,
    ScoreDetails,
    Sentiment,
    TopicAnalysis,
    VisibilityScore,
)
from .result import AssessmentResult

__all__ = [
    # Request
    "AnswerRecord",
    "AssessmentRequest",
    "CompanyIdentity",
    "CompetitorSeed",
    "ProgressEvent",
    "ProgressStage",
    "Question",
    "QuestionType",
    "normalize_domain",
    # Analysis
    "AnalysisInsights",
    "Citation",
    "CitationBreakdown",
    "CitationBucket",
    "ClassificationStats",
    "CompetitorMention",
    "CompetitorProfile",
    "DetectionSource",
    "MentionAnalysis",
    "MentionDetected",
    "MentionPosition",
    "NotDetected",
    "QuestionAnalysis",
    "ScoreDetails",
    "Sentiment",
    "TopicAnalysis",
    "VisibilityScore",
    # Result
    "AssessmentResult",
]
