"""
Resilient Query Client
Quota-aware, retrying access to the answer-engine API
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from visibility_engine.adapters.llm import (
    BaseLLMAdapter,
    LLMAdapterError,
    LLMAuthenticationError,
    LLMConfig,
    LLMInvalidRequestError,
    LLMMalformedResponseError,
    LLMRateLimitError,
    LLMResponse,
    LLMTimeoutError,
)
from visibility_engine.config import get_settings
from visibility_engine.errors import ErrorCode, QueryFailedError, VisibilityEngineError
from visibility_engine.services.quota_guard import QuotaGuard
from visibility_engine.utils.batching import ProgressCallback, run_in_batches

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Exponential backoff settings"""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    rate_limit_cooldown: float = 60.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based)"""
        return min(self.base_delay * self.backoff_factor ** (attempt - 1), self.max_delay)

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        settings = get_settings()
        return cls(
            max_retries=settings.LLM_MAX_RETRIES,
            base_delay=settings.LLM_RETRY_BASE_DELAY,
            max_delay=settings.LLM_RETRY_MAX_DELAY,
            backoff_factor=settings.LLM_RETRY_BACKOFF_FACTOR,
            rate_limit_cooldown=settings.LLM_RATE_LIMIT_COOLDOWN,
        )


@dataclass
class QueryRequest:
    """One question to put to the answer engine"""
    question_id: str
    query: str
    return_citations: bool = True
    search_domain_filter: Optional[List[str]] = None


def classify_adapter_error(error: LLMAdapterError) -> ErrorCode:
    """Map a transport failure onto the engine error taxonomy"""
    if isinstance(error, LLMAuthenticationError):
        return ErrorCode.FATAL_AUTH_ERROR
    if isinstance(error, LLMInvalidRequestError):
        return ErrorCode.FATAL_REQUEST_ERROR
    if isinstance(error, LLMMalformedResponseError):
        return ErrorCode.MALFORMED_RESPONSE
    return ErrorCode.RETRYABLE_TRANSPORT_ERROR


def is_retryable(error: LLMAdapterError) -> bool:
    return classify_adapter_error(error) == ErrorCode.RETRYABLE_TRANSPORT_ERROR


class ResilientQueryClient:
    """
    Wraps an answer-engine adapter with:
    - quota enforcement before any network call
    - retry with exponential backoff for timeouts, 5xx and 429
    - an explicit cooldown after 429 using the server hint when given
    - batch orchestration that never drops an item
    """

    def __init__(
        self,
        adapter: BaseLLMAdapter,
        quota: QuotaGuard,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        spacing: Optional[Tuple[float, float]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        settings = get_settings()
        self.adapter = adapter
        self.quota = quota
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.timeout = timeout or settings.LLM_REQUEST_TIMEOUT
        self.batch_size = batch_size or settings.BATCH_SIZE
        self.spacing = spacing or (settings.REQUEST_SPACING_MIN, settings.REQUEST_SPACING_MAX)
        self._sleep = sleep
        self._rng = rng or random.Random()

    def _config_for(self, request: QueryRequest) -> LLMConfig:
        settings = get_settings()
        return LLMConfig(
            model=self.adapter.default_model,
            temperature=settings.PERPLEXITY_TEMPERATURE,
            max_tokens=settings.PERPLEXITY_MAX_TOKENS,
            timeout=int(self.timeout),
            search_domain_filter=request.search_domain_filter,
            extra_params={} if request.return_citations else {"return_citations": False},
        )

    async def _attempt(self, request: QueryRequest) -> LLMResponse:
        """One wall-clock bounded call"""
        try:
            return await asyncio.wait_for(
                self.adapter.execute(request.query, config=self._config_for(request)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise LLMTimeoutError(
                f"Request timed out after {self.timeout}s",
                self.adapter.provider,
            )

    async def query(self, request: QueryRequest) -> LLMResponse:
        """
        Fetch an answer for one question.

        Raises:
            QuotaExceededError: quota window is full, no call was made
            QueryFailedError: fatal failure, or retries exhausted
        """
        self.quota.acquire()
        committed = False
        try:
            response = await self._query_with_retries(request)
            self.quota.commit()
            committed = True
            return response
        finally:
            if not committed:
                self.quota.release()

    async def _query_with_retries(self, request: QueryRequest) -> LLMResponse:
        policy = self.retry_policy
        last_error: Optional[LLMAdapterError] = None

        for attempt in range(policy.max_retries + 1):
            if attempt > 0:
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Retrying question %s (attempt %d/%d) in %.1fs: %s",
                    request.question_id, attempt, policy.max_retries, delay, last_error,
                )
                await self._sleep(delay)

            try:
                return await self._attempt(request)
            except LLMAdapterError as e:
                last_error = e
                code = classify_adapter_error(e)
                if code != ErrorCode.RETRYABLE_TRANSPORT_ERROR:
                    raise QueryFailedError(
                        str(e),
                        code,
                        {"question_id": request.question_id, "status_code": e.status_code, "attempts": attempt + 1},
                    ) from e
                if isinstance(e, LLMRateLimitError):
                    cooldown = e.retry_after if e.retry_after is not None else policy.rate_limit_cooldown
                    self.quota.note_throttled(cooldown)
                    if attempt < policy.max_retries:
                        logger.warning("Answer engine throttled, cooling down %.1fs", cooldown)
                        await self._sleep(cooldown)

        raise QueryFailedError(
            f"Retries exhausted after {policy.max_retries + 1} attempts: {last_error}",
            ErrorCode.RETRYABLE_TRANSPORT_ERROR,
            {"question_id": request.question_id, "attempts": policy.max_retries + 1},
        ) from last_error

    def placeholder(self, request: QueryRequest, message: str, code: ErrorCode) -> LLMResponse:
        """Degraded stand-in for a failed or skipped call"""
        now = datetime.utcnow()
        return LLMResponse(
            content="",
            raw_response={},
            provider=self.adapter.provider,
            model=self.adapter.default_model,
            response_id=f"error-{int(now.timestamp() * 1000)}",
            finish_reason="error",
            request_time=now,
            response_time=now,
            citations=[],
            error=f"Error: {message}",
            error_code=code.value,
            is_error=True,
        )

    async def _query_or_placeholder(self, request: QueryRequest) -> LLMResponse:
        try:
            return await self.query(request)
        except VisibilityEngineError as e:
            logger.warning("Question %s degraded (%s): %s", request.question_id, e.code.value, e.message)
            return self.placeholder(request, e.message, e.code)
        except Exception as e:
            logger.exception("Unexpected failure for question %s", request.question_id)
            return self.placeholder(request, str(e), ErrorCode.RETRYABLE_TRANSPORT_ERROR)

    def _jitter(self) -> float:
        low, high = self.spacing
        return self._rng.uniform(low, high)

    async def batch_query(
        self,
        requests: Sequence[QueryRequest],
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[LLMResponse]:
        """
        Fetch answers for many questions.

        Always returns one response per request, in order. Failed calls
        become placeholders with is_error set; calls skipped after
        cancellation become CANCELLED placeholders.
        """
        results = await run_in_batches(
            requests,
            self._query_or_placeholder,
            batch_size=self.batch_size,
            spacing=self._jitter,
            sleep=self._sleep,
            cancel_event=cancel_event,
            on_progress=on_progress,
        )
        return [
            result if result is not None
            else self.placeholder(request, "Cancelled before the call was made", ErrorCode.CANCELLED)
            for request, result in zip(requests, results)
        ]
