"""Application configuration."""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://devsignal:devsignal@db:5432/devsignal"

    # Redis (dedup cache, event stream, per-account leases). Unset disables it.
    REDIS_URL: Optional[str] = None
    EVENT_STREAM_NAME: str = "devsignal:signal_received"
    DEDUP_CACHE_TTL_SECONDS: int = 3600

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Email (Resend-compatible HTTP API)
    EMAIL_API_URL: str = "https://api.resend.com/emails"
    EMAIL_API_KEY: Optional[str] = None
    EMAIL_FROM: str = "DevSignal <alerts@devsignal.dev>"
    APP_URL: str = "http://localhost:3000"

    # Scoring
    DEFAULT_HOT_THRESHOLD: int = 80
    DEFAULT_WARM_THRESHOLD: int = 50
    DEFAULT_COLD_THRESHOLD: int = 20
    DEFAULT_MAX_SCORE: int = 100
    SCORE_TREND_EPSILON: float = 4.0
    SCORING_DECAY_CURVE: str = "step"  # "step" or "linear"
    SCORE_RECOMPUTE_DEBOUNCE_SECONDS: float = 2.0
    SCORE_LOCK_TIMEOUT_SECONDS: float = 30.0

    # Alerts
    ALERT_COOLDOWN_MINUTES: int = 60
    HOT_SIGNAL_WINDOW_MINUTES: int = 10
    ALERT_ERROR_SAMPLE_SIZE: int = 5

    # Feature Flags
    ENABLE_SCHEDULER: bool = True
    ENABLE_REACTIVE_ALERTS: bool = True

    # Scheduled jobs
    ALERT_SWEEP_INTERVAL_MINUTES: int = 5
    SCORE_SWEEP_SCHEDULE: str = "0 * * * *"  # hourly
    SOURCE_SYNC_INTERVAL_MINUTES: int = 15

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
