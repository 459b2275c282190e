from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # core
    ENV: str = "dev"
    API_PREFIX: str = "/api"

    # database & redis
    # Plain strings so sqlite:// and redis:// URLs are always accepted
    DATABASE_URL: str
    REDIS_URL: str

    # auth / security
    API_AUTH_KEY: str | None = None
    FRONTEND_ORIGIN: str | None = None
    # Explicit debug-only switch for wide-open CORS in non-prod envs
    CORS_ALLOW_ALL_ORIGINS: bool = False
    # Where OAuth callbacks send the browser back to
    FRONTEND_URL: str = "http://localhost:5173"
    # Public base URL of this API, used to build webhook URLs for scraper runs
    PUBLIC_API_BASE_URL: str = "http://localhost:8000"

    # llm
    OPENAI_API_KEY: str | None = None
    OPENROUTER_API_KEY: str | None = None
    LLM_MODEL: str = "gpt-4o-mini"
    # Hard cap on concurrent LLM calls per process
    LLM_MAX_CONCURRENCY: int = 4
    LLM_PRICEBOOK_JSON: str | None = None

    # image generation (Gemini)
    GEMINI_API_KEY: str | None = None
    GEMINI_IMAGE_MODEL: str = "gemini-2.5-flash-image"
    GEMINI_TIMEOUT_SECONDS: int = 120

    # Microsoft identity platform / Graph
    MICROSOFT_CLIENT_ID: str | None = None
    MICROSOFT_CLIENT_SECRET: str | None = None
    MICROSOFT_REDIRECT_URI: str | None = None
    GRAPH_TIMEOUT_SECONDS: int = 30

    # Apify scraper control plane
    APIFY_API_TOKEN: str | None = None
    APIFY_BASE_URL: str = "https://api.apify.com/v2"
    APIFY_BUYICT_ACTOR: str = "verifiable_hare~hs-social-express---buyict-scraper"
    APIFY_GOV_DIRECTORY_ACTOR: str = "verifiable_hare~hs-social-express---gov-agency-scraper"
    APIFY_POLL_INTERVAL_SECONDS: int = 5
    APIFY_MAX_POLLS: int = 360

    # storage (S3-compatible bucket, or local folder when S3_BUCKET is unset)
    S3_BUCKET: str | None = None
    S3_REGION: str | None = None
    S3_ENDPOINT_URL: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_PUBLIC_URL_BASE: str | None = None
    LOCAL_STORAGE_DIR: str = "./storage"

    # Fixed pause between items in bulk image/logo runs (third-party rate limits)
    BULK_ITEM_DELAY_SECONDS: float = 1.0

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
