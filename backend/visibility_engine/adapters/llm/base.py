"""
Base LLM Adapter Interface
Answer-engine and analysis-service transports implement this interface
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum

import httpx


class LLMProviderType(str, Enum):
    """Supported LLM providers"""
    OPENAI = "openai"
    PERPLEXITY = "perplexity"


@dataclass
class LLMConfig:
    """Configuration for LLM request"""
    model: str
    temperature: float = 0.7
    max_tokens: int = 2000
    timeout: int = 30  # seconds
    top_p: Optional[float] = None
    search_domain_filter: Optional[List[str]] = None
    extra_params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LLMMessage:
    """A message in the conversation"""
    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class LLMUsage:
    """Token usage information"""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class LLMResponse:
    """Standardized LLM response across all providers"""
    # Core response
    content: str
    raw_response: Dict[str, Any]  # Original response from provider

    # Metadata
    provider: LLMProviderType
    model: str
    response_id: Optional[str] = None
    finish_reason: Optional[str] = None

    # Usage & Cost
    usage: Optional[LLMUsage] = None
    estimated_cost_usd: Optional[float] = None

    # Timing
    request_time: Optional[datetime] = None
    response_time: Optional[datetime] = None
    latency_ms: Optional[int] = None

    # Citations (answer engines only)
    citations: List[str] = field(default_factory=list)

    # Error handling (degraded placeholders)
    error: Optional[str] = None
    error_code: Optional[str] = None
    is_error: bool = False


class BaseLLMAdapter(ABC):
    """
    Abstract base class for LLM adapters.
    Each provider owns its wire format and maps HTTP failures onto
    the LLMAdapterError hierarchy below.
    """

    def __init__(
        self,
        api_key: Optional[str],
        config: Optional[LLMConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.config = config
        self._http_client = http_client

    @property
    @abstractmethod
    def provider(self) -> LLMProviderType:
        """Return the provider type"""
        pass

    @property
    @abstractmethod
    def default_model(self) -> str:
        """Return the default model for this provider"""
        pass

    @abstractmethod
    async def execute_chat(
        self,
        messages: List[LLMMessage],
        config: Optional[LLMConfig] = None,
    ) -> LLMResponse:
        """
        Execute a chat conversation.

        Args:
            messages: List of messages in the conversation
            config: Optional configuration override

        Returns:
            LLMResponse with standardized response data

        Raises:
            LLMAdapterError: on any transport or protocol failure
        """
        pass

    @abstractmethod
    def estimate_cost(self, input_tokens: int, output_tokens: int, model: Optional[str] = None) -> float:
        """Estimate the cost of a request in USD"""
        pass

    async def execute(
        self,
        prompt: str,
        config: Optional[LLMConfig] = None,
        system_prompt: Optional[str] = None,
    ) -> LLMResponse:
        """Execute a single prompt"""
        messages = []
        if system_prompt:
            messages.append(LLMMessage(role="system", content=system_prompt))
        messages.append(LLMMessage(role="user", content=prompt))
        return await self.execute_chat(messages, config)

    async def _post(self, url: str, payload: Dict[str, Any], timeout: float) -> httpx.Response:
        """POST using the injected client when present, else a short-lived one"""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self._http_client is not None:
            return await self._http_client.post(url, json=payload, headers=headers, timeout=timeout)
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(url, json=payload, headers=headers)

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Map non-200 responses onto adapter exceptions"""
        status = response.status_code
        if status == 200:
            return
        details = {"status_code": status, "response": response.text[:500]}
        if status in (401, 403):
            raise LLMAuthenticationError("Invalid or unauthorized API key", self.provider, details)
        if status == 429:
            raise LLMRateLimitError(
                "Rate limit exceeded",
                self.provider,
                details,
                retry_after=parse_retry_after(response),
            )
        if status >= 500:
            raise LLMServerError(f"Server error {status}", self.provider, details)
        raise LLMInvalidRequestError(f"Request rejected with {status}: {response.text[:200]}", self.provider, details)

    def _calculate_latency(self, start: datetime, end: datetime) -> int:
        """Calculate latency in milliseconds"""
        return int((end - start).total_seconds() * 1000)


_RETRY_AFTER_PATTERN = re.compile(r"retry after (\d+(?:\.\d+)?)", re.IGNORECASE)


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Read a retry-after hint from the header or the error message"""
    header = response.headers.get("retry-after")
    if header:
        try:
            return max(0.0, float(header))
        except ValueError:
            pass
    match = _RETRY_AFTER_PATTERN.search(response.text or "")
    if match:
        return float(match.group(1))
    return None


class LLMAdapterError(Exception):
    """Base exception for LLM adapter errors"""
    def __init__(self, message: str, provider: LLMProviderType, details: Optional[Dict] = None):
        super().__init__(message)
        self.provider = provider
        self.details = details or {}

    @property
    def status_code(self) -> Optional[int]:
        return self.details.get("status_code")


class LLMRateLimitError(LLMAdapterError):
    """Rate limit exceeded"""
    def __init__(
        self,
        message: str,
        provider: LLMProviderType,
        details: Optional[Dict] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, provider, details)
        self.retry_after = retry_after


class LLMAuthenticationError(LLMAdapterError):
    """Authentication failed"""
    pass


class LLMTimeoutError(LLMAdapterError):
    """Request timed out"""
    pass


class LLMInvalidRequestError(LLMAdapterError):
    """Invalid request parameters"""
    pass


class LLMServerError(LLMAdapterError):
    """Provider-side failure (5xx)"""
    pass


class LLMMalformedResponseError(LLMAdapterError):
    """Reply did not have the expected shape"""
    pass
