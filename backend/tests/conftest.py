"""Pytest configuration and fixtures."""

import os

# Keep settings and Celery away from real services before any app code runs
os.environ["APP_ENV"] = "test"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ.pop("PERPLEXITY_API_KEY", None)
os.environ.pop("OPENAI_API_KEY", None)

from unittest.mock import AsyncMock, MagicMock

import pytest

from visibility_engine.adapters.llm import LLMProviderType
from visibility_engine.schemas import CompanyIdentity, CompetitorSeed


@pytest.fixture
def company() -> CompanyIdentity:
    """Company used across tests."""
    return CompanyIdentity(
        id="co-1",
        name="Acme Cloud",
        domain="https://www.AcmeCloud.com/",
        industry="technology",
        description="Cloud cost monitoring",
        owned_domains=["acme-docs.dev"],
        operated_domains=["community.acmehub.org"],
        competitors=[CompetitorSeed(name="Rival Corp", domain="rival.io")],
    )


@pytest.fixture
def fake_sleep() -> AsyncMock:
    """Sleep replacement that records delays without waiting."""
    return AsyncMock(return_value=None)


@pytest.fixture
def answer_engine() -> MagicMock:
    """Answer-engine adapter double; set execute.side_effect per test."""
    adapter = MagicMock()
    adapter.provider = LLMProviderType.PERPLEXITY
    adapter.default_model = "sonar"
    adapter.execute = AsyncMock()
    return adapter
