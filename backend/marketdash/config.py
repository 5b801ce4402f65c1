"""
MarketDash — Configuration Management

Pydantic Settings: loads from .env, validates all configuration at startup.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Core ──
    app_env: str = "development"
    app_debug: bool = True

    # ── Logging ──
    log_level: str = "INFO"
    log_json: bool = False

    # ── Redis ──
    redis_url: str = "redis://localhost:6379/0"

    # ── Data Source API Keys ──
    alpaca_api_key: str = ""
    alpaca_secret_key: str = ""
    alpaca_feed: str = "iex"  # 'iex' (free), 'sip' (paid), 'delayed_sip'

    alpha_vantage_api_key: str = ""
    finnhub_api_key: str = ""

    # ── Demo Data ──
    demo_data_enabled: bool = False  # Append the offline sample provider to every chain

    # ── CORS ──
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance — created once, reused everywhere."""
    return Settings()
