"""
Assessment Pipeline
Runs one assessment: questions -> answers -> analyses -> score
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from visibility_engine.adapters.llm import LLMResponse, get_adapter
from visibility_engine.adapters.parsing.citation_classifier import CitationClassifier
from visibility_engine.config import get_settings
from visibility_engine.errors import FATAL_CODES, ErrorCode, PipelineFailedError
from visibility_engine.schemas import (
    AnswerRecord,
    AssessmentRequest,
    AssessmentResult,
    ProgressEvent,
    ProgressStage,
    Question,
    QuestionAnalysis,
)
from visibility_engine.services.analysis_adapter import AnalysisAdapter, AnalysisItem
from visibility_engine.services.competitor_detector import CompetitorDetector
from visibility_engine.services.query_client import QueryRequest, ResilientQueryClient
from visibility_engine.services.quota_guard import QuotaGuard
from visibility_engine.services.scoring_engine import ScoringEngine

logger = logging.getLogger(__name__)

ProgressHandler = Callable[[ProgressEvent], None]

# Progress checkpoints (percent)
SETUP_START = 5
SETUP_DONE = 15
QUESTIONS_DONE = 40
ANALYSIS_DONE = 90
SCORING = 90
COMPLETE = 100


def to_answer_record(question: Question, response: LLMResponse) -> AnswerRecord:
    return AnswerRecord(
        question_id=question.id,
        raw_text=response.content,
        raw_citation_urls=list(response.citations),
        fetched_at=response.response_time or datetime.utcnow(),
        model=response.model,
        latency_ms=response.latency_ms,
        degraded=response.is_error,
        error_code=ErrorCode(response.error_code) if response.error_code else None,
        error=response.error,
    )


class AssessmentPipeline:
    """
    Orchestrates one assessment run.

    Stages and progress:
    - setup      5 -> 15   validate request, seed competitors
    - questions 15 -> 40   fetch answers through the resilient client
    - analysis  40 -> 90   semantic analysis with heuristic fallback
    - scoring   90 -> 100  reduce to a VisibilityScore

    The run only aborts (PIPELINE_FAILED) for an invalid request or when
    every answer failed and a fatal error was among the failures. Everything
    else degrades per question.
    """

    def __init__(
        self,
        query_client: ResilientQueryClient,
        analysis_adapter: AnalysisAdapter,
        scoring_engine: Optional[ScoringEngine] = None,
        competitor_detector: Optional[CompetitorDetector] = None,
    ):
        self.query_client = query_client
        self.analysis_adapter = analysis_adapter
        self.classifier = analysis_adapter.classifier
        self.scoring_engine = scoring_engine or ScoringEngine()
        self.competitor_detector = competitor_detector or CompetitorDetector()

    @staticmethod
    def validate_request(request: AssessmentRequest) -> None:
        """Raise PipelineFailedError for a request that cannot be assessed"""
        problems = []
        if not request.company.name.strip():
            problems.append("company name is required")
        if not request.company.domain:
            problems.append("company domain is required")
        if not request.questions:
            problems.append("at least one question is required")
        ids = [q.id for q in request.questions]
        if len(set(ids)) != len(ids):
            problems.append("question ids must be unique")
        if problems:
            raise PipelineFailedError(
                f"Invalid assessment request: {'; '.join(problems)}",
                {"problems": problems},
            )

    @staticmethod
    def _emit(
        on_progress: Optional[ProgressHandler],
        stage: ProgressStage,
        completed: int,
        message: str,
    ) -> None:
        if on_progress is None:
            return
        try:
            on_progress(ProgressEvent(stage=stage, completed=completed, message=message))
        except Exception:
            logger.exception("Progress handler failed at %s/%d", stage.value, completed)

    async def run(
        self,
        request: AssessmentRequest,
        on_progress: Optional[ProgressHandler] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AssessmentResult:
        """
        Run a full assessment.

        Raises:
            PipelineFailedError: invalid request, or nothing could be fetched
                because of a fatal client error
        """
        started_at = datetime.utcnow()
        start_clock = time.monotonic()
        assessment_id = str(uuid.uuid4())
        company = request.company
        questions = sorted(request.questions, key=lambda q: q.position)

        self._emit(on_progress, ProgressStage.SETUP, SETUP_START, "Validating assessment request")
        self.validate_request(request)

        seeds = self.competitor_detector.seed_profiles(company, request.include_industry_competitors)
        seed_domains = self.competitor_detector.domains(seeds)
        self._emit(
            on_progress, ProgressStage.SETUP, SETUP_DONE,
            f"Prepared {len(questions)} questions and {len(seeds)} known competitors",
        )
        logger.info("Assessment %s started for %s with %d questions", assessment_id, company.name, len(questions))

        # Questions
        def question_progress(done: int, total: int) -> None:
            pct = SETUP_DONE + int((QUESTIONS_DONE - SETUP_DONE) * done / total)
            self._emit(on_progress, ProgressStage.QUESTIONS, pct, f"Answered {done}/{total} questions")

        responses = await self.query_client.batch_query(
            [QueryRequest(question_id=q.id, query=q.text) for q in questions],
            on_progress=question_progress,
            cancel_event=cancel_event,
        )
        answers = [to_answer_record(q, r) for q, r in zip(questions, responses)]
        self._check_fatal(answers)

        asked = [
            (q, a) for q, a in zip(questions, answers)
            if a.error_code != ErrorCode.CANCELLED
        ]
        degraded = sum(1 for a in answers if a.degraded and a.error_code != ErrorCode.CANCELLED)
        self._emit(
            on_progress, ProgressStage.QUESTIONS, QUESTIONS_DONE,
            f"Fetched {len(asked) - degraded} answers ({degraded} degraded)",
        )

        # Analysis
        def analysis_progress(done: int, total: int) -> None:
            pct = QUESTIONS_DONE + int((ANALYSIS_DONE - QUESTIONS_DONE) * done / total)
            self._emit(on_progress, ProgressStage.ANALYSIS, pct, f"Analyzed {done}/{total} answers")

        analysed = await self.analysis_adapter.analyze_batch(
            company,
            [AnalysisItem(question=q, answer_text=a.raw_text, citation_urls=a.raw_citation_urls) for q, a in asked],
            competitor_domains=seed_domains,
            on_progress=analysis_progress,
            cancel_event=cancel_event,
        )
        analyses: List[QuestionAnalysis] = [a for a in analysed if a is not None]
        self._emit(on_progress, ProgressStage.ANALYSIS, ANALYSIS_DONE, f"Analyzed {len(analyses)} answers")

        # Scoring
        self._emit(on_progress, ProgressStage.SCORING, SCORING, "Calculating visibility score")
        score = self.scoring_engine.score(analyses)
        competitors = self.competitor_detector.detect(company, analyses, seeds)
        citation_stats = self.classifier.classification_stats(
            [c for analysis in analyses for c in analysis.citations]
        )

        cancelled = cancel_event is not None and cancel_event.is_set()
        completed_at = datetime.utcnow()
        result = AssessmentResult(
            assessment_id=assessment_id,
            company=company,
            answers=answers,
            analyses=analyses,
            competitors=competitors,
            visibility_score=score,
            citation_stats=citation_stats,
            started_at=started_at,
            completed_at=completed_at,
            processing_time_ms=int((time.monotonic() - start_clock) * 1000),
            cancelled=cancelled,
            degraded_answers=degraded,
            fallback_analyses=sum(1 for a in analyses if a.is_fallback),
        )

        message = "Assessment cancelled; partial results scored" if cancelled else "Assessment complete"
        self._emit(on_progress, ProgressStage.COMPLETE, COMPLETE, message)
        logger.info(
            "Assessment %s finished: overall=%.1f, %d analyses, %d fallbacks%s",
            assessment_id, score.overall, len(analyses), result.fallback_analyses,
            " (cancelled)" if cancelled else "",
        )
        return result

    @staticmethod
    def _check_fatal(answers: List[AnswerRecord]) -> None:
        attempted = [a for a in answers if a.error_code != ErrorCode.CANCELLED]
        if not attempted or any(not a.degraded for a in attempted):
            return
        fatal = [a for a in attempted if a.error_code in FATAL_CODES]
        if fatal:
            raise PipelineFailedError(
                f"No answers could be fetched: {fatal[0].error}",
                {"error_code": fatal[0].error_code.value, "failed_questions": len(attempted)},
            )


def build_pipeline(
    quota: QuotaGuard,
    perplexity_api_key: Optional[str] = None,
    openai_api_key: Optional[str] = None,
) -> AssessmentPipeline:
    """Wire a pipeline from settings; the quota guard is owned by the caller"""
    settings = get_settings()
    classifier = CitationClassifier()
    answer_engine = get_adapter("perplexity", api_key=perplexity_api_key)
    analysis_key = openai_api_key or settings.OPENAI_API_KEY
    analysis_service = get_adapter("openai", api_key=analysis_key) if analysis_key else None
    return AssessmentPipeline(
        query_client=ResilientQueryClient(answer_engine, quota),
        analysis_adapter=AnalysisAdapter(analysis_service, classifier),
    )
