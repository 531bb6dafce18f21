"""
OpenAI Adapter
Transport for the semantic-analysis service
"""

from datetime import datetime
from typing import List, Optional

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


class OpenAIAdapter(BaseLLMAdapter):
    """Adapter for OpenAI chat completions, used for structured answer analysis"""

    # Cost per 1K tokens (USD)
    PRICING = {
        "gpt-4o": {"input": 0.0025, "output": 0.01},
        "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
        "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    }

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[LLMConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        api_base: Optional[str] = None,
    ):
        super().__init__(api_key or settings.OPENAI_API_KEY, config, http_client)
        self.api_base = (api_base or settings.OPENAI_API_BASE).rstrip("/")

    @property
    def provider(self) -> LLMProviderType:
        return LLMProviderType.OPENAI

    @property
    def default_model(self) -> str:
        return settings.ANALYSIS_DEFAULT_MODEL

    def estimate_cost(self, input_tokens: int, output_tokens: int, model: Optional[str] = None) -> float:
        """Estimate cost based on token counts"""
        model = model or self.default_model
        pricing = self.PRICING.get(model, self.PRICING["gpt-4o"])
        input_cost = (input_tokens / 1000) * pricing["input"]
        output_cost = (output_tokens / 1000) * pricing["output"]
        return input_cost + output_cost

    async def execute_chat(
        self,
        messages: List[LLMMessage],
        config: Optional[LLMConfig] = None,
    ) -> LLMResponse:
        """Execute a chat conversation"""
        cfg = config or self.config or LLMConfig(model=self.default_model)
        request_time = datetime.utcnow()

        payload = {
            "model": cfg.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": cfg.temperature,
            "max_tokens": cfg.max_tokens,
        }
        if cfg.top_p is not None:
            payload["top_p"] = cfg.top_p
        payload.update(cfg.extra_params)

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

        try:
            data = response.json()
            choice = data["choices"][0]
            content = choice["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError):
            raise LLMMalformedResponseError("Invalid response: missing message content", self.provider)

        usage_data = data.get("usage") or {}
        usage = LLMUsage(
            prompt_tokens=usage_data.get("prompt_tokens", 0),
            completion_tokens=usage_data.get("completion_tokens", 0),
            total_tokens=usage_data.get("total_tokens", 0),
        )

        return LLMResponse(
            content=content,
            raw_response=data,
            provider=self.provider,
            model=cfg.model,
            response_id=data.get("id"),
            finish_reason=choice.get("finish_reason"),
            usage=usage,
            estimated_cost_usd=self.estimate_cost(
                usage.prompt_tokens, usage.completion_tokens, cfg.model
            ),
            request_time=request_time,
            response_time=response_time,
            latency_ms=self._calculate_latency(request_time, response_time),
        )
