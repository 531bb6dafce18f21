"""
Analysis & Scoring Schemas
"""

from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .assessment import Question


class CitationBucket(str, Enum):
    """Whose interest a cited source serves"""
    OWNED = "owned"
    OPERATED = "operated"
    EARNED = "earned"
    COMPETITOR = "competitor"


class MentionPosition(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    PASSING = "passing"
    NONE = "none"


class Sentiment(str, Enum):
    VERY_POSITIVE = "very_positive"
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    VERY_NEGATIVE = "very_negative"


class DetectionSource(str, Enum):
    MENTION = "mention"
    CITATION = "citation"
    MANUAL = "manual"
    KNOWN_LIST = "known-list"


class Citation(BaseModel):
    """A classified citation URL"""
    url: str
    resolved_domain: str
    bucket: CitationBucket
    influence_score: float = Field(..., ge=0.0, le=1.0)
    relevance_score: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""

    class Config:
        frozen = True


class MentionDetected(BaseModel):
    """The company was mentioned in the answer"""
    kind: Literal["detected"] = "detected"
    position: MentionPosition
    sentiment: Sentiment = Sentiment.NEUTRAL
    context: Optional[str] = None

    @field_validator("position")
    @classmethod
    def position_is_placed(cls, v: MentionPosition) -> MentionPosition:
        if v == MentionPosition.NONE:
            raise ValueError("a detected mention needs a position")
        return v

    class Config:
        frozen = True


class NotDetected(BaseModel):
    """The company was not mentioned in the answer"""
    kind: Literal["not_detected"] = "not_detected"

    class Config:
        frozen = True


MentionOutcome = Annotated[Union[MentionDetected, NotDetected], Field(discriminator="kind")]


class MentionAnalysis(BaseModel):
    """Mention signal for one question"""
    question_id: str
    outcome: MentionOutcome
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""

    @property
    def mention_detected(self) -> bool:
        return isinstance(self.outcome, MentionDetected)

    @property
    def position(self) -> MentionPosition:
        if isinstance(self.outcome, MentionDetected):
            return self.outcome.position
        return MentionPosition.NONE

    @property
    def sentiment(self) -> Sentiment:
        if isinstance(self.outcome, MentionDetected):
            return self.outcome.sentiment
        return Sentiment.NEUTRAL

    class Config:
        frozen = True


class CompetitorMention(BaseModel):
    """A competitor surfaced in one answer"""
    name: str
    domain: Optional[str] = None
    context: Optional[str] = None


class TopicAnalysis(BaseModel):
    primary_topics: List[str] = Field(default_factory=list)
    business_intent: Optional[str] = None


class AnalysisInsights(BaseModel):
    visibility_score: float = Field(default=0.0, ge=0.0, le=100.0)
    competitive_position: Optional[str] = None
    key_takeaways: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)


class QuestionAnalysis(BaseModel):
    """Everything learned from one question's answer"""
    question: Question
    answer_text: str = ""
    mention: MentionAnalysis
    competitors: List[CompetitorMention] = Field(default_factory=list)
    citations: List[Citation] = Field(default_factory=list)
    topics: TopicAnalysis = Field(default_factory=TopicAnalysis)
    insights: AnalysisInsights = Field(default_factory=AnalysisInsights)
    is_fallback: bool = False
    degraded_reason: Optional[str] = None

    @property
    def question_id(self) -> str:
        return self.question.id


class CompetitorProfile(BaseModel):
    """A competitor detected across the whole run"""
    name: str
    domain: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    detected_from: DetectionSource


class CitationBreakdown(BaseModel):
    """Raw citation counts per bucket"""
    owned: int = 0
    operated: int = 0
    earned: int = 0
    competitor: int = 0

    @property
    def total(self) -> int:
        return self.owned + self.operated + self.earned + self.competitor


class ScoreDetails(BaseModel):
    """Intermediate values behind the overall score"""
    total_questions: int = 0
    mentioned_questions: int = 0
    weighted_score: float = 0.0
    competitor_count: int = 0
    niche_tier: str = "micro"
    competitive_bonus: float = 0.0
    share_of_voice: float = 0.0
    citation_quality_score: float = 0.0
    base_score: float = 0.0


class VisibilityScore(BaseModel):
    """Final score for a completed run"""
    overall: float = Field(..., ge=0.0, le=95.0)
    mention_rate: float = Field(..., ge=0.0, le=1.0)
    mention_quality: float = Field(..., ge=0.0, le=1.0)
    source_influence: float = Field(..., ge=0.0, le=1.0)
    competitive_positioning: float = Field(..., ge=0.0, le=1.0)
    response_consistency: float = Field(..., ge=0.0, le=1.0)
    citation_breakdown: CitationBreakdown = Field(default_factory=CitationBreakdown)
    details: ScoreDetails = Field(default_factory=ScoreDetails)
    explanation: List[str] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "VisibilityScore":
        return cls(
            overall=0.0,
            mention_rate=0.0,
            mention_quality=0.0,
            source_influence=0.0,
            competitive_positioning=0.0,
            response_consistency=0.0,
            explanation=["No question analyses to score"],
        )

    class Config:
        frozen = True


class ClassificationStats(BaseModel):
    total: int = 0
    by_bucket: Dict[str, int] = Field(default_factory=dict)
    avg_influence: float = 0.0
    avg_relevance: float = 0.0

