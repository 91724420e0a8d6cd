"""Service configuration pulled from environment variables via pydantic."""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger, mask_url
logger = get_tagged_logger(__name__, tag="config")


class Settings(BaseSettings):
    """Environment-driven configuration for the offline-first guide sync layer."""
    model_config = SettingsConfigDict(env_prefix="GUIDE_", extra="ignore")

    # persistence
    store_backend: str = "sqlite"  # options: sqlite, memory
    store_database_url: str = "sqlite:///./guide_store.db"
    kv_redis_url: str | None = None
    kv_prefix: str = "guide:"
    seed_path: str | None = None  # defaults to the bundled guide_sync/data/cities.json

    # city pack resolver
    resource_base_url: str = "http://localhost:3000/api/manifest"
    fetch_timeout_seconds: float = 2.5
    fallback_delay_seconds: float | None = None  # None: same as fetch_timeout_seconds
    sync_reset_seconds: float = 3.0
    simulate_offline: bool = False

    # environmental feed
    environmental_endpoint: str = "http://localhost:3000/api/vitals/environmental-impact"
    environmental_ttl_seconds: int = 30 * 60
    environmental_timeout_seconds: float = 7.0

    # city pulse feed
    news_api_url: str = "https://newsapi.org/v2/everything"
    news_api_key: str | None = None
    pulse_ttl_seconds: int = 6 * 60 * 60
    pulse_timeout_seconds: float = 5.0

    # visa lookup
    visa_api_host: str = "visa-requirement.p.rapidapi.com"
    visa_api_key: str | None = None
    visa_cooldown_seconds: int = 30 * 60
    visa_timeout_seconds: float = 10.0

    log_level: str = "INFO"

    @field_validator("resource_base_url", "environmental_endpoint", "news_api_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize endpoint URLs to avoid double slashes."""
        return str(v).rstrip("/")

    @field_validator("store_backend", mode="after")
    @classmethod
    def lower_backend(cls, v: str) -> str:
        """Accept SQLITE/Memory in any case."""
        return str(v).strip().lower()

    @property
    def effective_fallback_delay(self) -> float:
        """Delay before the local tiers answer a still-pending network fetch."""
        if self.fallback_delay_seconds is None:
            return self.fetch_timeout_seconds
        return self.fallback_delay_seconds


settings = Settings()


if __name__ == "__main__":
    logger.logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {settings.model_dump_json(indent=4)}")
    logger.debug(f"Store database: {mask_url(settings.store_database_url)}")
