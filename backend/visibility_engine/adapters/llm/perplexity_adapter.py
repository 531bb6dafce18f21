"""
Perplexity Adapter
Answer engine: natural-language answers with source citations
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from visibility_engine.config import get_settings
from .base import (
    BaseLLMAdapter,
    LLMConfig,
    LLMMessage,
    LLMResponse,
    LLMUsage,
    LLMProviderType,
    LLMAdapterError,
    LLMMalformedResponseError,
    LLMTimeoutError,
)

settings = get_settings()


class PerplexityAdapter(BaseLLMAdapter):
    """
    Adapter for the Perplexity chat completions API.
    Perplexity natively returns the URLs it drew on, which makes it
    the answer engine citations are measured against.
    """

    # Cost per 1K tokens (USD)
    PRICING = {
        "sonar": {"input": 0.001, "output": 0.001},
        "sonar-pro": {"input": 0.003, "output": 0.015},
        "sonar-reasoning": {"input": 0.001, "output": 0.005},
    }

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[LLMConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        api_base: Optional[str] = None,
    ):
        super().__init__(api_key or settings.PERPLEXITY_API_KEY, config, http_client)
        self.api_base = (api_base or settings.PERPLEXITY_API_BASE).rstrip("/")

    @property
    def provider(self) -> LLMProviderType:
        return LLMProviderType.PERPLEXITY

    @property
    def default_model(self) -> str:
        return settings.PERPLEXITY_DEFAULT_MODEL

    def default_config(self) -> LLMConfig:
        return LLMConfig(
            model=self.default_model,
            temperature=settings.PERPLEXITY_TEMPERATURE,
            max_tokens=settings.PERPLEXITY_MAX_TOKENS,
            timeout=settings.LLM_REQUEST_TIMEOUT,
        )

    def estimate_cost(self, input_tokens: int, output_tokens: int, model: Optional[str] = None) -> float:
        """Estimate cost based on token counts"""
        model = model or self.default_model
        pricing = self.PRICING.get(model, self.PRICING["sonar"])
        input_cost = (input_tokens / 1000) * pricing["input"]
        output_cost = (output_tokens / 1000) * pricing["output"]
        return input_cost + output_cost

    def build_payload(self, messages: List[LLMMessage], cfg: LLMConfig) -> Dict[str, Any]:
        payload = {
            "model": cfg.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": cfg.temperature,
            "max_tokens": cfg.max_tokens,
            "return_citations": True,
            "return_related_questions": False,
        }
        if cfg.top_p is not None:
            payload["top_p"] = cfg.top_p
        if cfg.search_domain_filter:
            payload["search_domain_filter"] = list(cfg.search_domain_filter)
        payload.update(cfg.extra_params)
        return payload

    async def execute_chat(
        self,
        messages: List[LLMMessage],
        config: Optional[LLMConfig] = None,
    ) -> LLMResponse:
        """Execute a chat conversation"""
        cfg = config or self.config or self.default_config()
        request_time = datetime.utcnow()
        payload = self.build_payload(messages, cfg)

        try:
            response = await self._post(f"{self.api_base}/chat/completions", payload, cfg.timeout)
        except httpx.TimeoutException:
            raise LLMTimeoutError(
                f"Request timed out after {cfg.timeout}s",
                self.provider,
            )
        except httpx.RequestError as e:
            raise LLMAdapterError(
                f"Request failed: {str(e)}",
                self.provider,
            )

        response_time = datetime.utcnow()
        self._raise_for_status(response)

        data = self._validate(response)
        choice = data["choices"][0]
        usage_data = data.get("usage") or {}

        usage = LLMUsage(
            prompt_tokens=usage_data.get("prompt_tokens", 0),
            completion_tokens=usage_data.get("completion_tokens", 0),
            total_tokens=usage_data.get("total_tokens", 0),
        )

        return LLMResponse(
            content=choice["message"]["content"],
            raw_response=data,
            provider=self.provider,
            model=data.get("model", cfg.model),
            response_id=data["id"],
            finish_reason=choice.get("finish_reason"),
            usage=usage,
            estimated_cost_usd=self.estimate_cost(
                usage.prompt_tokens, usage.completion_tokens, cfg.model
            ),
            request_time=request_time,
            response_time=response_time,
            latency_ms=self._calculate_latency(request_time, response_time),
            citations=[url for url in data.get("citations") or [] if isinstance(url, str)],
        )

    def _validate(self, response: httpx.Response) -> Dict[str, Any]:
        """Check the reply carries an id and a first choice with content"""
        try:
            data = response.json()
        except ValueError:
            raise LLMMalformedResponseError("Response body is not JSON", self.provider)

        if not isinstance(data, dict) or not data.get("id"):
            raise LLMMalformedResponseError("Invalid response: missing id", self.provider)

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise LLMMalformedResponseError("Invalid response: missing or empty choices", self.provider)

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict) or not isinstance(message.get("content"), str):
            raise LLMMalformedResponseError("Invalid response: missing message content", self.provider)

        return data
