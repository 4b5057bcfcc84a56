"""
action_engine/config.py

Engine settings, read from environment variables or a .env file.
"""
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings"""

    # Application
    APP_NAME: str = "action-engine"
    LOG_LEVEL: str = "INFO"

    # Persistence adapters (state store / memory log)
    DATABASE_URL: str = "sqlite:///./action_engine.db"

    # Handler execution
    HANDLER_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    HANDLER_CANCEL_GRACE_SECONDS: float = Field(default=1.0, ge=0)
    MAX_ATTEMPTS: int = 3

    # Retry backoff: delay = initial * multiplier ** attempt, capped at max
    BACKOFF_INITIAL_DELAY: float = 0.5
    BACKOFF_MULTIPLIER: float = 2.0
    BACKOFF_MAX_DELAY: float = 10.0
    BACKOFF_JITTER: bool = False

    # Rate limiting per (action, actor); 0 disables
    RATE_LIMIT: int = 5
    RATE_WINDOW_SECONDS: float = 60.0

    # Lock lease; must outlive one handler attempt
    LOCK_LEASE_SECONDS: float = 45.0

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @model_validator(mode="after")
    def _check_lease_exceeds_timeout(self) -> "Settings":
        if self.MAX_ATTEMPTS < 1:
            raise ValueError("MAX_ATTEMPTS must be at least 1")
        if self.LOCK_LEASE_SECONDS <= self.HANDLER_TIMEOUT_SECONDS:
            raise ValueError(
                f"LOCK_LEASE_SECONDS ({self.LOCK_LEASE_SECONDS}) must exceed "
                f"HANDLER_TIMEOUT_SECONDS ({self.HANDLER_TIMEOUT_SECONDS})"
            )
        return self


# Global settings instance
settings = Settings()
