"""
Analysis Adapter
Boundary to the semantic-analysis service: prompt, decode, fallback
"""

import asyncio
import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import AliasChoices, BaseModel, Field, StrictBool, ValidationError, field_validator

from visibility_engine.adapters.llm import BaseLLMAdapter, LLMAdapterError, LLMConfig
from visibility_engine.adapters.parsing.citation_classifier import (
    CitationClassifier,
    build_domain_hints,
)
from visibility_engine.config import INDUSTRY_CONTEXT, get_settings
from visibility_engine.errors import ErrorCode
from visibility_engine.schemas import (
    AnalysisInsights,
    Citation,
    CompanyIdentity,
    CompetitorMention,
    MentionAnalysis,
    MentionDetected,
    MentionPosition,
    NotDetected,
    Question,
    QuestionAnalysis,
    Sentiment,
    TopicAnalysis,
    normalize_domain,
)
from visibility_engine.utils.batching import ProgressCallback, run_in_batches

logger = logging.getLogger(__name__)


ANALYSIS_SYSTEM_PROMPT = (
    "You analyze how companies appear in answers produced by AI answer engines. "
    "Reply with one JSON object and nothing else."
)

ANALYSIS_PROMPT_TEMPLATE = """Analyze how the company below appears in an answer engine's response.

COMPANY
Name: {name}
Domain: {domain}
Industry: {industry}
Description: {description}

QUESTION
{question}

ANSWER
{answer}

CITATIONS (with pre-computed domain hints)
{citations}

Return JSON with exactly these five sections:
{{
  "mention_analysis": {{
    "mention_detected": true,
    "mention_position": "primary | secondary | passing | none",
    "mention_sentiment": "very_positive | positive | neutral | negative | very_negative",
    "mention_context": "sentence where the company appears, or null",
    "confidence_score": 0.0,
    "reasoning": "one or two sentences"
  }},
  "competitor_analysis": [
    {{"company_name": "name", "domain": "domain or null", "context": "where it appears"}}
  ],
  "citation_analysis": [
    {{"url": "cited url", "bucket": "owned | operated | earned | competitor"}}
  ],
  "topic_analysis": {{"primary_topics": ["topic"], "business_intent": "informational | commercial | transactional"}},
  "insights": {{
    "visibility_score": 0,
    "competitive_position": "leader | challenger | follower | absent",
    "key_takeaways": ["takeaway"],
    "opportunities": ["opportunity"]
  }}
}}

Positions: primary = the answer centres on the company; secondary = one of several
recommended options; passing = named without emphasis; none = not mentioned.
Only list other companies as competitors, never {name} itself."""

REQUIRED_SECTIONS = (
    "mention_analysis",
    "competitor_analysis",
    "citation_analysis",
    "topic_analysis",
    "insights",
)

FALLBACK_TOPIC_KEYWORDS = ("pricing", "features", "integration", "support", "performance")

_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)

_POSITION_ALIASES = {
    "main": "primary",
    "top": "primary",
    "first": "primary",
    "featured": "primary",
    "supporting": "secondary",
    "alternative": "secondary",
    "brief": "passing",
    "minor": "passing",
    "mentioned": "passing",
}

_SENTIMENT_ALIASES = {
    "very positive": "very_positive",
    "strongly_positive": "very_positive",
    "very negative": "very_negative",
    "strongly_negative": "very_negative",
    "mixed": "neutral",
}


# ---------------------------------------------------------------------- #
# Decoding
# ---------------------------------------------------------------------- #

class _MentionSection(BaseModel):
    mention_detected: StrictBool
    mention_position: Optional[str] = None
    mention_sentiment: Optional[str] = None
    mention_context: Optional[str] = None
    confidence_score: Optional[float] = None
    reasoning: Optional[str] = None


class _CompetitorEntry(BaseModel):
    company_name: str = Field(validation_alias=AliasChoices("company_name", "name"))
    domain: Optional[str] = None
    context: Optional[str] = None


class _ServicePayload(BaseModel):
    mention_analysis: _MentionSection
    competitor_analysis: List[_CompetitorEntry]
    citation_analysis: List[Dict[str, Any]]
    topic_analysis: Dict[str, Any]
    insights: Dict[str, Any]

    @field_validator("competitor_analysis", mode="before")
    @classmethod
    def unwrap_competitors(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return v.get("competitors", [])
        return v

    @field_validator("citation_analysis", mode="before")
    @classmethod
    def unwrap_citations(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return v.get("citations", [])
        return v


@dataclass(frozen=True)
class DecodedAnalysis:
    """Service reply, normalized into engine types"""
    outcome: Union[MentionDetected, NotDetected]
    confidence: float
    reasoning: str
    competitors: List[CompetitorMention] = field(default_factory=list)
    service_buckets: Dict[str, str] = field(default_factory=dict)
    topics: TopicAnalysis = field(default_factory=TopicAnalysis)
    insights: AnalysisInsights = field(default_factory=AnalysisInsights)


@dataclass(frozen=True)
class AnalysisOk:
    value: DecodedAnalysis


@dataclass(frozen=True)
class AnalysisErr:
    reason: str


DecodeResult = Union[AnalysisOk, AnalysisErr]


def _normalize_key(raw: Any) -> str:
    return str(raw or "").strip().lower().replace("-", "_")


def normalize_position(raw: Any) -> MentionPosition:
    value = _normalize_key(raw).replace(" ", "_")
    value = _POSITION_ALIASES.get(value, value)
    try:
        return MentionPosition(value)
    except ValueError:
        return MentionPosition.NONE


def normalize_sentiment(raw: Any) -> Sentiment:
    value = _normalize_key(raw)
    value = _SENTIMENT_ALIASES.get(value, value).replace(" ", "_")
    try:
        return Sentiment(value)
    except ValueError:
        return Sentiment.NEUTRAL


def _clamp(value: Optional[float], low: float, high: float, default: float) -> float:
    if value is None:
        return default
    return max(low, min(high, float(value)))


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None and str(item).strip()]


def _normalize_payload(payload: _ServicePayload) -> DecodedAnalysis:
    mention = payload.mention_analysis
    if mention.mention_detected:
        position = normalize_position(mention.mention_position)
        if position == MentionPosition.NONE:
            # Detected but unplaced counts as the weakest placement
            position = MentionPosition.PASSING
        outcome = MentionDetected(
            position=position,
            sentiment=normalize_sentiment(mention.mention_sentiment),
            context=mention.mention_context,
        )
    else:
        outcome = NotDetected()

    competitors = []
    for entry in payload.competitor_analysis:
        name = entry.company_name.strip()
        if not name:
            continue
        competitors.append(CompetitorMention(
            name=name,
            domain=(normalize_domain(entry.domain) or None) if entry.domain else None,
            context=entry.context,
        ))

    service_buckets = {}
    for item in payload.citation_analysis:
        url, bucket = item.get("url"), item.get("bucket") or item.get("category")
        if isinstance(url, str) and isinstance(bucket, str):
            service_buckets[url] = bucket.strip().lower()

    topic_data = payload.topic_analysis
    topics = TopicAnalysis(
        primary_topics=_string_list(topic_data.get("primary_topics") or topic_data.get("topics")),
        business_intent=topic_data.get("business_intent") if isinstance(topic_data.get("business_intent"), str) else None,
    )

    insight_data = payload.insights
    try:
        raw_score = float(insight_data.get("visibility_score") or 0)
    except (TypeError, ValueError):
        raw_score = 0.0
    position_text = insight_data.get("competitive_position")
    insights = AnalysisInsights(
        visibility_score=_clamp(raw_score, 0.0, 100.0, 0.0),
        competitive_position=position_text if isinstance(position_text, str) else None,
        key_takeaways=_string_list(insight_data.get("key_takeaways")),
        opportunities=_string_list(insight_data.get("opportunities")),
    )

    return DecodedAnalysis(
        outcome=outcome,
        confidence=_clamp(mention.confidence_score, 0.0, 1.0, 0.8),
        reasoning=(mention.reasoning or "").strip(),
        competitors=competitors,
        service_buckets=service_buckets,
        topics=topics,
        insights=insights,
    )


def decode_analysis(text: Optional[str]) -> DecodeResult:
    """
    Decode the service reply into a tagged result.

    Accepts JSON optionally wrapped in code fences or surrounding prose.
    All five sections must be present and mention_detected must be a
    real boolean; anything else is an Err with the reason.
    """
    if not text or not text.strip():
        return AnalysisErr("empty reply")

    cleaned = _CODE_FENCE.sub("", text).strip()
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        return AnalysisErr("no JSON object in reply")

    try:
        data = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        return AnalysisErr(f"invalid JSON: {e.msg}")

    if not isinstance(data, dict):
        return AnalysisErr("reply is not a JSON object")

    missing = [section for section in REQUIRED_SECTIONS if section not in data]
    if missing:
        return AnalysisErr(f"missing sections: {', '.join(missing)}")

    try:
        payload = _ServicePayload.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        return AnalysisErr(f"invalid section {location}: {first['msg']}")

    return AnalysisOk(_normalize_payload(payload))


# ---------------------------------------------------------------------- #
# Adapter
# ---------------------------------------------------------------------- #

@dataclass
class AnalysisItem:
    """One question's answer, ready for analysis"""
    question: Question
    answer_text: str
    citation_urls: List[str] = field(default_factory=list)


class AnalysisAdapter:
    """
    Turns (company, question, answer, citations) into a QuestionAnalysis.

    The semantic-analysis service is trusted for mention, sentiment and
    competitor extraction only. Citation buckets always come from the
    CitationClassifier. Any service, transport or decode failure yields
    an explicit fallback analysis instead of an exception.
    """

    CONTEXT_WINDOW = 100

    def __init__(
        self,
        service: Optional[BaseLLMAdapter],
        classifier: Optional[CitationClassifier] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        use_cache: Optional[bool] = None,
        fallback_visibility_score: Optional[float] = None,
    ):
        settings = get_settings()
        self.service = service
        self.classifier = classifier or CitationClassifier()
        self.timeout = timeout or settings.LLM_REQUEST_TIMEOUT
        self.batch_size = batch_size or settings.BATCH_SIZE
        self.use_cache = settings.ANALYSIS_CACHE_ENABLED if use_cache is None else use_cache
        self.fallback_visibility_score = (
            settings.FALLBACK_VISIBILITY_SCORE if fallback_visibility_score is None
            else fallback_visibility_score
        )
        # Scoped to this adapter, i.e. to one assessment run
        self._cache: Dict[Tuple[str, str, str], DecodedAnalysis] = {}

    def _service_config(self) -> LLMConfig:
        settings = get_settings()
        return LLMConfig(
            model=self.service.default_model,
            temperature=settings.ANALYSIS_TEMPERATURE,
            max_tokens=settings.ANALYSIS_MAX_TOKENS,
            timeout=int(self.timeout),
            extra_params={"response_format": {"type": "json_object"}},
        )

    def build_prompt(
        self,
        company: CompanyIdentity,
        question: Question,
        answer_text: str,
        citations: Sequence[Citation],
    ) -> str:
        industry = company.industry or "other"
        industry_line = industry
        if industry in INDUSTRY_CONTEXT:
            industry_line = f"{industry} ({INDUSTRY_CONTEXT[industry]})"
        hints = build_domain_hints(citations)
        return ANALYSIS_PROMPT_TEMPLATE.format(
            name=company.name,
            domain=company.domain,
            industry=industry_line,
            description=company.description or "n/a",
            question=question.text,
            answer=answer_text,
            citations="\n".join(f"- {hint}" for hint in hints) if hints else "- none",
        )

    def _context_snippet(self, text: str, needle: str) -> Optional[str]:
        pos = text.lower().find(needle.lower())
        if pos == -1:
            return None
        start = max(0, pos - self.CONTEXT_WINDOW)
        end = min(len(text), pos + len(needle) + self.CONTEXT_WINDOW)
        return text[start:end].strip()

    def build_fallback_analysis(
        self,
        company: CompanyIdentity,
        question: Question,
        answer_text: str,
        citations: Sequence[Citation],
        reason: str,
    ) -> QuestionAnalysis:
        """Heuristic analysis used whenever the service cannot be trusted"""
        name = company.name.strip()
        detected = bool(name) and name.lower() in answer_text.lower()
        if detected:
            outcome = MentionDetected(
                position=MentionPosition.PASSING,
                sentiment=Sentiment.NEUTRAL,
                context=self._context_snippet(answer_text, name),
            )
        else:
            outcome = NotDetected()

        answer_lower = answer_text.lower()
        return QuestionAnalysis(
            question=question,
            answer_text=answer_text,
            mention=MentionAnalysis(
                question_id=question.id,
                outcome=outcome,
                confidence=0.0,
                reasoning=f"Fallback analysis: {reason}",
            ),
            competitors=[],
            citations=list(citations),
            topics=TopicAnalysis(
                primary_topics=[k for k in FALLBACK_TOPIC_KEYWORDS if k in answer_lower],
            ),
            insights=AnalysisInsights(visibility_score=self.fallback_visibility_score),
            is_fallback=True,
            degraded_reason=reason,
        )

    async def _request_analysis(self, prompt: str) -> str:
        response = await asyncio.wait_for(
            self.service.execute(
                prompt,
                config=self._service_config(),
                system_prompt=ANALYSIS_SYSTEM_PROMPT,
            ),
            timeout=self.timeout,
        )
        return response.content

    def _log_bucket_disagreements(
        self,
        question: Question,
        citations: Sequence[Citation],
        service_buckets: Dict[str, str],
    ) -> None:
        disagreements = [
            c.url for c in citations
            if c.url in service_buckets and service_buckets[c.url] != c.bucket.value
        ]
        if disagreements:
            logger.info(
                "Service disagreed with %d citation bucket(s) for question %s; classifier kept",
                len(disagreements), question.id,
            )

    @staticmethod
    def _is_self(company: CompanyIdentity, competitor: CompetitorMention) -> bool:
        if competitor.name.strip().lower() == company.name.strip().lower():
            return True
        return bool(competitor.domain) and competitor.domain == company.domain

    async def analyze(
        self,
        company: CompanyIdentity,
        question: Question,
        answer_text: str,
        citation_urls: Iterable[str],
        competitor_domains: Iterable[str] = (),
    ) -> QuestionAnalysis:
        """Analyze one answer; never raises for service or decode failures"""
        citation_urls = list(citation_urls)
        competitor_domains = list(competitor_domains)
        citations = self.classifier.classify_many(citation_urls, company, competitor_domains)

        if self.service is None:
            return self.build_fallback_analysis(
                company, question, answer_text, citations,
                "semantic analysis service not configured",
            )
        if not answer_text.strip():
            return self.build_fallback_analysis(company, question, answer_text, citations, "no answer text")

        answer_hash = hashlib.sha256(answer_text.encode("utf-8")).hexdigest()
        key = (company.cache_key, question.text.strip().lower(), answer_hash)
        decoded = self._cache.get(key) if self.use_cache else None

        if decoded is None:
            prompt = self.build_prompt(company, question, answer_text, citations)
            try:
                raw = await self._request_analysis(prompt)
            except asyncio.TimeoutError:
                logger.warning("Analysis timed out for question %s", question.id)
                return self.build_fallback_analysis(
                    company, question, answer_text, citations,
                    f"analysis timed out after {self.timeout}s",
                )
            except LLMAdapterError as e:
                logger.warning("Analysis transport failed for question %s: %s", question.id, e)
                return self.build_fallback_analysis(
                    company, question, answer_text, citations, f"analysis service error: {e}",
                )

            result = decode_analysis(raw)
            if isinstance(result, AnalysisErr):
                logger.warning(
                    "%s for question %s: %s",
                    ErrorCode.ANALYSIS_VALIDATION_ERROR.value, question.id, result.reason,
                )
                return self.build_fallback_analysis(
                    company, question, answer_text, citations, result.reason,
                )
            decoded = result.value
            if self.use_cache:
                self._cache[key] = decoded

        competitors = [c for c in decoded.competitors if not self._is_self(company, c)]
        extra_domains = [c.domain for c in competitors if c.domain]
        if extra_domains:
            citations = self.classifier.classify_many(
                citation_urls, company, competitor_domains + extra_domains,
            )
        self._log_bucket_disagreements(question, citations, decoded.service_buckets)

        return QuestionAnalysis(
            question=question,
            answer_text=answer_text,
            mention=MentionAnalysis(
                question_id=question.id,
                outcome=decoded.outcome,
                confidence=decoded.confidence,
                reasoning=decoded.reasoning,
            ),
            competitors=competitors,
            citations=citations,
            topics=decoded.topics,
            insights=decoded.insights,
        )

    async def _analyze_item(
        self,
        company: CompanyIdentity,
        item: AnalysisItem,
        competitor_domains: List[str],
    ) -> QuestionAnalysis:
        try:
            return await self.analyze(
                company, item.question, item.answer_text, item.citation_urls, competitor_domains,
            )
        except Exception as e:
            logger.exception("Analysis failed for question %s", item.question.id)
            citations = self.classifier.classify_many(item.citation_urls, company, competitor_domains)
            return self.build_fallback_analysis(
                company, item.question, item.answer_text, citations, f"processing failed: {e}",
            )

    async def analyze_batch(
        self,
        company: CompanyIdentity,
        items: Sequence[AnalysisItem],
        competitor_domains: Iterable[str] = (),
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[Optional[QuestionAnalysis]]:
        """Analyze many answers in sub-batches; None marks items skipped by cancellation"""
        competitor_domains = list(competitor_domains)

        async def worker(item: AnalysisItem) -> QuestionAnalysis:
            return await self._analyze_item(company, item, competitor_domains)

        return await run_in_batches(
            items,
            worker,
            batch_size=self.batch_size,
            cancel_event=cancel_event,
            on_progress=on_progress,
        )

    def clear_cache(self) -> None:
        self._cache.clear()
