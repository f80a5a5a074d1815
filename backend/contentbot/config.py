"""Application configuration using Pydantic Settings."""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # Application
    APP_NAME: str = "Contentbot Article Generator"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./data/contentbot.db"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Celery
    CELERY_CONCURRENCY: int = 2
    QUEUE_SWEEP_INTERVAL_SECONDS: int = 60
    PUBLISH_SWEEP_INTERVAL_SECONDS: int = 300

    # LLM provider
    LLM_PROVIDER: str = "gemini"               # ollama | openai | anthropic | gemini | openrouter
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_UPDATE_MODEL: str = ""                 # falls back to LLM_MODEL
    OPENAI_API_KEY: str = ""
    ANTHROPIC_API_KEY: str = ""
    GEMINI_API_KEY: str = ""
    OPENROUTER_API_KEY: str = ""
    OLLAMA_URL: str = "http://host.docker.internal:11434"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 8192
    LLM_MAX_RETRIES: int = 4

    # External research task service
    RESEARCH_MODE: str = "sync"                # sync | async
    RESEARCH_API_URL: str = "https://api.parallel.ai"
    RESEARCH_API_KEY: str = ""
    RESEARCH_PROCESSOR: str = "pro"
    RESEARCH_WEBHOOK_URL: str = ""
    RESEARCH_WEBHOOK_SECRET: str = ""
    RESEARCH_MAX_RETRIES: int = 2

    # Cover images (disabled when empty)
    UNSPLASH_ACCESS_KEY: str = ""

    # Cron endpoints (open when empty)
    CRON_SECRET: str = ""

    # Credits
    ARTICLE_GENERATION_CREDIT_COST: int = 10
    DEFAULT_STARTING_CREDITS: int = 3

    # SEO audit / quality gates
    SEO_MIN_SCORE: int = 70
    SEO_MIN_H2: int = 3
    SEO_MIN_CHARS: int = 800
    SEO_MIN_WORDS: int = 300
    SEO_MIN_READING_EASE: float = 50.0
    SEO_MAX_REMEDIATION_PASSES: int = 2

    # Pipeline limits
    MAX_QUALITY_CONTROL_RUNS: int = 3
    VALIDATION_TIMEOUT_SECONDS: float = 120.0
    STALE_GENERATION_MINUTES: int = 60
    PUBLISH_WEBHOOK_TIMEOUT_SECONDS: float = 30.0

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def update_model(self) -> str:
        return self.LLM_UPDATE_MODEL or self.LLM_MODEL

    @property
    def async_research_enabled(self) -> bool:
        """Async research needs both an API key and a webhook to call back."""
        return (
            self.RESEARCH_MODE == "async"
            and bool(self.RESEARCH_API_KEY)
            and bool(self.RESEARCH_WEBHOOK_URL)
        )

    def api_key_for(self, provider: str) -> str:
        return {
            "openai": self.OPENAI_API_KEY,
            "anthropic": self.ANTHROPIC_API_KEY,
            "gemini": self.GEMINI_API_KEY,
            "google": self.GEMINI_API_KEY,
            "openrouter": self.OPENROUTER_API_KEY,
        }.get(provider, "")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
