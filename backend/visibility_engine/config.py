"""
Configuration management for the Visibility Assessment Engine
Environment-based settings with safe defaults
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "visibility-engine"
    APP_ENV: str = "development"  # development, staging, production
    DEBUG: bool = False
    API_VERSION: str = "v1"
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Answer engine (Perplexity)
    PERPLEXITY_API_KEY: Optional[str] = None
    PERPLEXITY_API_BASE: str = "https://api.perplexity.ai"
    PERPLEXITY_DEFAULT_MODEL: str = "sonar"
    PERPLEXITY_TEMPERATURE: float = 0.2
    PERPLEXITY_MAX_TOKENS: int = 2000

    # Semantic analysis service (OpenAI)
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_API_BASE: str = "https://api.openai.com/v1"
    ANALYSIS_DEFAULT_MODEL: str = "gpt-4o"
    ANALYSIS_TEMPERATURE: float = 0.1
    ANALYSIS_MAX_TOKENS: int = 1500
    ANALYSIS_CACHE_ENABLED: bool = True
    FALLBACK_VISIBILITY_SCORE: int = 10

    # Outbound call resilience
    LLM_REQUEST_TIMEOUT: int = 30  # seconds, wall clock per attempt
    LLM_MAX_RETRIES: int = 3
    LLM_RETRY_BASE_DELAY: float = 1.0
    LLM_RETRY_MAX_DELAY: float = 30.0
    LLM_RETRY_BACKOFF_FACTOR: float = 2.0
    LLM_RATE_LIMIT_COOLDOWN: float = 60.0  # used when the server sends no hint

    # Rolling request quota (per worker process)
    QUOTA_MAX_REQUESTS: int = 500
    QUOTA_WINDOW_SECONDS: int = 3600

    # Batching
    BATCH_SIZE: int = 10
    REQUEST_SPACING_MIN: float = 0.2
    REQUEST_SPACING_MAX: float = 0.5

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings loader"""
    return Settings()


# Product-tuned scoring constants. These are calibrated values, not derived;
# change them only together with the score distribution they produce.
QUESTION_TYPE_WEIGHTS = {
    "direct_conversational": 0.2,
    "comparison_query": 0.5,
    "indirect_conversational": 1.0,
    "recommendation_request": 1.5,
    "explanatory_query": 2.0,
}
DEFAULT_QUESTION_WEIGHT = 1.0

POSITION_MULTIPLIERS = {
    "primary": 1.0,
    "secondary": 0.7,
    "passing": 0.3,
    "none": 0.0,
}

SENTIMENT_MULTIPLIERS = {
    "very_positive": 1.2,
    "positive": 1.0,
    "neutral": 0.9,
    "negative": 0.8,
    "very_negative": 0.5,
}

# (max competitor count, tier name, bonus); last tier is open-ended
NICHE_BONUS_TIERS = [
    (3, "micro", 0.8),
    (10, "niche", 1.0),
    (None, "broad", 1.3),
]

# (share of voice strictly above, multiplier), checked in order
SHARE_OF_VOICE_TIERS = [
    (0.6, 1.3),
    (0.4, 1.15),
]

CITATION_BUCKET_WEIGHTS = {
    "owned": 1.0,
    "operated": 0.7,
    "earned": 0.9,
    "competitor": -0.2,
}

CITATION_QUALITY_POINTS = 20
SCORE_FLOOR = 5.0
SCORE_CAP = 95.0

# Citation influence by bucket
CITATION_INFLUENCE = {
    "owned": 0.95,
    "operated": 0.85,
    "earned_high_authority": 0.85,
    "earned_news": 0.8,
    "earned": 0.7,
    "competitor": 0.3,
    "classification_error": 0.5,
}

# Industry-specific context hints for the analysis prompt
INDUSTRY_CONTEXT = {
    "technology": "software, SaaS, tech products, APIs, development tools",
    "ecommerce": "online shopping, retail, products, marketplace",
    "finance": "banking, fintech, investments, financial services",
    "healthcare": "medical, health tech, wellness, patient care",
    "education": "learning, EdTech, courses, training",
    "marketing": "advertising, SEO, content, digital marketing",
    "legal": "law, compliance, legal services, contracts",
    "real_estate": "property, housing, real estate services",
    "travel": "tourism, hospitality, bookings, travel services",
    "food_beverage": "restaurants, food delivery, F&B industry",
    "other": "general business",
}

# Well-known players per industry, used as an opt-in competitor seed list
INDUSTRY_COMPETITORS = {
    "technology": [
        ("Microsoft", "microsoft.com"),
        ("Google", "google.com"),
        ("Amazon", "amazon.com"),
        ("Apple", "apple.com"),
        ("Meta", "meta.com"),
        ("Salesforce", "salesforce.com"),
        ("HubSpot", "hubspot.com"),
        ("Slack", "slack.com"),
    ],
    "finance": [
        ("JPMorgan Chase", "jpmorganchase.com"),
        ("Goldman Sachs", "goldmansachs.com"),
        ("Bank of America", "bankofamerica.com"),
        ("Wells Fargo", "wellsfargo.com"),
        ("Stripe", "stripe.com"),
        ("Square", "squareup.com"),
        ("PayPal", "paypal.com"),
    ],
}
