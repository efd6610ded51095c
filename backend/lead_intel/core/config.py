from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # core
    ENV: str = "dev"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"

    # redis: search-result cache (optional) and celery broker/backend
    REDIS_URL: str | None = None
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    ENRICHMENT_JOB_TIME_LIMIT_SECONDS: int = 600
    ENRICHMENT_RESULT_TTL_SECONDS: int = 60 * 60 * 24

    # retrieval providers
    EXA_API_KEY: str | None = None
    FIRECRAWL_API_KEY: str | None = None
    FIRECRAWL_BASE_URL: str = "https://api.firecrawl.dev/v1"
    SEARCH_PROVIDER: str = "exa"  # or "firecrawl"

    # llm
    OPENROUTER_API_KEY: str | None = None
    OPENAI_API_KEY: str | None = None
    LLM_MODEL: str = "gpt-4o"
    LLM_MAX_TOKENS: int = 4096
    LLM_TEMPERATURE: float = 0.2
    LLM_TIMEOUT_SECONDS: float = 120.0
    # Hard cap on concurrent LLM calls per process
    LLM_MAX_CONCURRENCY: int = 4

    # query planning
    PERSON_QUERY_CAP: int = 6
    COMPANY_QUERY_CAP: int = 10

    # retrieval fan-out
    SEARCH_MAX_RESULTS: int = 10
    RETRIEVAL_TIMEOUT_SECONDS: float = 20.0
    RETRIEVAL_MAX_CONCURRENCY: int = 6
    CRAWL_MAX_PAGES: int = 5
    CRAWL_MAX_DEPTH: int = 1
    CRAWL_MIN_WORDS: int = 50

    # evidence aggregation. These thresholds are hand-tuned; keep them overridable.
    MIN_SOURCE_CONTENT_CHARS: int = 200
    MAX_SOURCE_CONTENT_CHARS: int = 4000
    MAX_EVIDENCE_SOURCES: int = 20
    MIN_COMPANY_SOURCES: int = 2
    MAX_PROMPT_EVIDENCE_CHARS: int = 60000

    # domain validation
    DOMAIN_VALIDITY_THRESHOLD: float = 0.5

    # auth / security
    API_AUTH_KEY: str | None = None
    FRONTEND_ORIGIN: str | None = None
    # Explicit debug-only switch for wide-open CORS in non-prod envs
    CORS_ALLOW_ALL_ORIGINS: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
