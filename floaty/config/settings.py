"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Supabase
    SUPABASE_URL: str
    SUPABASE_SERVICE_ROLE_KEY: str
    SUPABASE_JWT_SECRET: str

    # Shared secret expected in the x-api-key header of /api/* proxy routes
    API_SECRET: str = ""

    # Fish Audio
    FISH_AUDIO_API_KEY: str = ""
    FISH_AUDIO_BASE_URL: str = "https://api.fish.audio"

    # Google Custom Search
    GOOGLE_SEARCH_API_KEY: str = ""
    GOOGLE_SEARCH_CX: str = ""

    # CORS
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Rate limiting (requests per minute)
    RATE_LIMIT_STANDARD: int = 60
    RATE_LIMIT_PROXY: int = 20

    # Peers whose x-forwarded-for header is believed (comma separated)
    TRUSTED_PROXIES: str = ""

    # Realtime subscriptions
    REALTIME_MAX_RETRIES: int = 3
    REALTIME_RETRY_BASE_SECONDS: float = 2.0
    REALTIME_RETRY_MAX_SECONDS: float = 15.0
    REALTIME_ABNORMAL_CLOSE_SECONDS: float = 30.0
    REALTIME_POLL_INTERVAL_SECONDS: float = 10.0

    LOG_LEVEL: str = "INFO"

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def trusted_proxies_list(self) -> list[str]:
        return [p.strip() for p in self.TRUSTED_PROXIES.split(",") if p.strip()]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
