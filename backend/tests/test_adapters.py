"""Tests for the answer-engine and analysis transports."""

import json

import httpx
import pytest

from visibility_engine.adapters.llm import (
    LLMAdapterError,
    LLMAuthenticationError,
    LLMConfig,
    LLMInvalidRequestError,
    LLMMalformedResponseError,
    LLMProviderType,
    LLMRateLimitError,
    LLMServerError,
    LLMTimeoutError,
    OpenAIAdapter,
    PerplexityAdapter,
    get_adapter,
    parse_retry_after,
)

API_BASE = "https://api.test"


def completion(content: str = "Acme Cloud leads.", citations=None, **extra) -> dict:
    body = {
        "id": "cmpl-1",
        "model": "sonar",
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30},
        "citations": citations if citations is not None else ["https://acmecloud.com", "https://rival.io"],
    }
    body.update(extra)
    return body


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestPerplexityAdapter:
    """Tests for PerplexityAdapter."""

    @pytest.mark.asyncio
    async def test_successful_completion(self) -> None:
        """Content, citations and usage are mapped."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json=completion())

        async with client_for(handler) as http_client:
            adapter = PerplexityAdapter(api_key="pplx-test", http_client=http_client, api_base=API_BASE)
            response = await adapter.execute("Who leads cloud cost monitoring?")

        assert seen["url"] == f"{API_BASE}/chat/completions"
        assert seen["auth"] == "Bearer pplx-test"
        assert seen["payload"]["model"] == "sonar"
        assert seen["payload"]["return_citations"] is True
        assert seen["payload"]["messages"] == [{"role": "user", "content": "Who leads cloud cost monitoring?"}]
        assert response.content == "Acme Cloud leads."
        assert response.citations == ["https://acmecloud.com", "https://rival.io"]
        assert response.response_id == "cmpl-1"
        assert response.usage.total_tokens == 30
        assert response.is_error is False

    @pytest.mark.asyncio
    async def test_domain_filter_and_extra_params(self) -> None:
        """Optional request fields reach the payload."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return httpx.Response(200, json=completion())

        config = LLMConfig(
            model="sonar-pro",
            search_domain_filter=["acmecloud.com"],
            extra_params={"return_citations": False},
        )
        async with client_for(handler) as http_client:
            adapter = PerplexityAdapter(api_key="k", http_client=http_client, api_base=API_BASE)
            await adapter.execute("q", config=config)

        assert seen["model"] == "sonar-pro"
        assert seen["search_domain_filter"] == ["acmecloud.com"]
        assert seen["return_citations"] is False

    @pytest.mark.asyncio
    async def test_non_string_citations_dropped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=completion(citations=["https://a.com", None, 3]))

        async with client_for(handler) as http_client:
            adapter = PerplexityAdapter(api_key="k", http_client=http_client, api_base=API_BASE)
            response = await adapter.execute("q")

        assert response.citations == ["https://a.com"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, error_type",
        [
            (401, LLMAuthenticationError),
            (403, LLMAuthenticationError),
            (429, LLMRateLimitError),
            (400, LLMInvalidRequestError),
            (500, LLMServerError),
            (503, LLMServerError),
        ],
    )
    async def test_status_mapping(self, status, error_type) -> None:
        """HTTP failures map onto adapter exceptions."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"error": "nope"})

        async with client_for(handler) as http_client:
            adapter = PerplexityAdapter(api_key="k", http_client=http_client, api_base=API_BASE)
            with pytest.raises(error_type) as exc_info:
                await adapter.execute("q")

        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "17"}, text="slow down")

        async with client_for(handler) as http_client:
            adapter = PerplexityAdapter(api_key="k", http_client=http_client, api_base=API_BASE)
            with pytest.raises(LLMRateLimitError) as exc_info:
                await adapter.execute("q")

        assert exc_info.value.retry_after == 17.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"choices": [{"message": {"content": "x"}}]},
            {"id": "1", "choices": []},
            {"id": "1", "choices": [{"message": {}}]},
            {"id": "1"},
        ],
    )
    async def test_malformed_body(self, body) -> None:
        """Replies missing id, choices or content are malformed."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=body)

        async with client_for(handler) as http_client:
            adapter = PerplexityAdapter(api_key="k", http_client=http_client, api_base=API_BASE)
            with pytest.raises(LLMMalformedResponseError):
                await adapter.execute("q")

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        async with client_for(handler) as http_client:
            adapter = PerplexityAdapter(api_key="k", http_client=http_client, api_base=API_BASE)
            with pytest.raises(LLMMalformedResponseError):
                await adapter.execute("q")

    @pytest.mark.asyncio
    async def test_transport_errors(self) -> None:
        """Timeouts and connection failures are adapter errors."""
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        def refused(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with client_for(timeout) as http_client:
            adapter = PerplexityAdapter(api_key="k", http_client=http_client, api_base=API_BASE)
            with pytest.raises(LLMTimeoutError):
                await adapter.execute("q")

        async with client_for(refused) as http_client:
            adapter = PerplexityAdapter(api_key="k", http_client=http_client, api_base=API_BASE)
            with pytest.raises(LLMAdapterError):
                await adapter.execute("q")

    def test_estimate_cost(self) -> None:
        adapter = PerplexityAdapter(api_key="k")

        assert adapter.estimate_cost(1000, 1000, "sonar-pro") == pytest.approx(0.018)


class TestOpenAIAdapter:
    """Tests for OpenAIAdapter."""

    @pytest.mark.asyncio
    async def test_json_mode_request(self) -> None:
        """System prompt and response format are sent."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={
                "id": "chatcmpl-1",
                "choices": [{"message": {"content": "{}"}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 5, "completion_tokens": 1, "total_tokens": 6},
            })

        config = LLMConfig(model="gpt-4o-mini", extra_params={"response_format": {"type": "json_object"}})
        async with client_for(handler) as http_client:
            adapter = OpenAIAdapter(api_key="sk-test", http_client=http_client, api_base=API_BASE)
            response = await adapter.execute("analyze", config=config, system_prompt="be terse")

        assert seen["messages"][0] == {"role": "system", "content": "be terse"}
        assert seen["response_format"] == {"type": "json_object"}
        assert response.content == "{}"
        assert response.provider == LLMProviderType.OPENAI

    @pytest.mark.asyncio
    async def test_malformed_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": "x", "choices": []})

        async with client_for(handler) as http_client:
            adapter = OpenAIAdapter(api_key="k", http_client=http_client, api_base=API_BASE)
            with pytest.raises(LLMMalformedResponseError):
                await adapter.execute("q")


class TestHelpers:
    """Tests for adapter helpers."""

    def test_retry_after_from_header(self) -> None:
        response = httpx.Response(429, headers={"retry-after": "2.5"})

        assert parse_retry_after(response) == 2.5

    def test_retry_after_from_message(self) -> None:
        response = httpx.Response(429, json={"error": {"message": "Please retry after 30 seconds"}})

        assert parse_retry_after(response) == 30.0

    def test_retry_after_missing(self) -> None:
        assert parse_retry_after(httpx.Response(429, text="too many")) is None

    def test_get_adapter(self) -> None:
        assert isinstance(get_adapter("perplexity", api_key="k"), PerplexityAdapter)
        assert isinstance(get_adapter("openai", api_key="k"), OpenAIAdapter)
        with pytest.raises(ValueError):
            get_adapter("anthropic")
