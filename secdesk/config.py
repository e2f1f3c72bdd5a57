"""Application configuration via environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Desk REST backend
    backend_api_url: str = "http://localhost:5000/api"
    backend_api_token: str = ""
    backend_timeout: float = 15.0

    # Request queue
    queue_max_concurrent: int = 3
    queue_processing_delay: float = 0.3  # seconds between drained batches

    # Request cache (seconds)
    cache_ttl: float = 30.0
    cache_error_window: float = 5.0
    cache_min_error_ttl: float = 0.1
    security_services_cache_ttl: float = 300.0

    model_config = {"env_file": ".env", "env_prefix": "SECDESK_", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
