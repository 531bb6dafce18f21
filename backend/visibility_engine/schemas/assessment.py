"""
Assessment Request Schemas
Inbound company identity, question set and progress events
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from visibility_engine.errors import ErrorCode


def normalize_domain(value: str) -> str:
    """Lowercase a domain and strip scheme, path, port and leading www."""
    value = (value or "").strip().lower()
    if not value:
        return ""
    if "://" in value:
        value = urlparse(value).hostname or ""
    else:
        value = value.split("/", 1)[0].split(":", 1)[0]
    if value.startswith("www."):
        value = value[4:]
    return value.rstrip(".")


class QuestionType(str, Enum):
    """Question difficulty categories"""
    DIRECT_CONVERSATIONAL = "direct_conversational"
    COMPARISON_QUERY = "comparison_query"
    INDIRECT_CONVERSATIONAL = "indirect_conversational"
    RECOMMENDATION_REQUEST = "recommendation_request"
    EXPLANATORY_QUERY = "explanatory_query"


class ProgressStage(str, Enum):
    SETUP = "setup"
    QUESTIONS = "questions"
    ANALYSIS = "analysis"
    SCORING = "scoring"
    COMPLETE = "complete"


class CompetitorSeed(BaseModel):
    """A competitor supplied with the request"""
    name: str = Field(..., min_length=1, max_length=255)
    domain: Optional[str] = None

    @field_validator("domain")
    @classmethod
    def clean_domain(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        return normalize_domain(v) or None


class CompanyIdentity(BaseModel):
    """The company whose visibility is being assessed"""
    id: Optional[str] = None
    name: str = ""
    domain: str = ""
    industry: Optional[str] = None
    description: Optional[str] = None
    owned_domains: List[str] = Field(default_factory=list)
    operated_domains: List[str] = Field(default_factory=list)
    competitors: List[CompetitorSeed] = Field(default_factory=list)

    @field_validator("domain")
    @classmethod
    def clean_domain(cls, v: str) -> str:
        return normalize_domain(v)

    @field_validator("owned_domains", "operated_domains")
    @classmethod
    def clean_domain_list(cls, v: List[str]) -> List[str]:
        return [d for d in (normalize_domain(item) for item in v) if d]

    @property
    def brand_token(self) -> str:
        """First label of the registered domain, e.g. 'acme' for acme.io"""
        return self.domain.split(".")[0] if self.domain else ""

    @property
    def cache_key(self) -> str:
        return self.id or self.name.strip().lower()

    class Config:
        frozen = True


class Question(BaseModel):
    """A question issued against the answer engine"""
    id: str
    text: str = Field(..., min_length=1)
    type: QuestionType
    position: int = 0

    class Config:
        frozen = True


class AssessmentRequest(BaseModel):
    """One assessment run: a company and the questions to ask about it"""
    company: CompanyIdentity
    questions: List[Question] = Field(default_factory=list, max_length=100)
    include_industry_competitors: bool = False


class AnswerRecord(BaseModel):
    """Raw answer-engine output for one question"""
    question_id: str
    raw_text: str
    raw_citation_urls: List[str] = Field(default_factory=list)
    fetched_at: datetime
    model: Optional[str] = None
    latency_ms: Optional[int] = None
    degraded: bool = False
    error_code: Optional[ErrorCode] = None
    error: Optional[str] = None

    class Config:
        frozen = True


class ProgressEvent(BaseModel):
    """Progress checkpoint emitted while a run advances"""
    stage: ProgressStage
    completed: int = Field(..., ge=0, le=100)
    total: int = 100
    message: str
