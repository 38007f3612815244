from pydantic import Field, AliasChoices, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Any, Dict, Optional


def _default_tier_policies() -> Dict[str, Dict[str, Any]]:
    return {
        # Free: lifetime cap governs AI generation (daily cap disabled)
        "free": {
            "daily_ai_limit": 0,
            "lifetime_ai_limit": 2,
            "monthly_audio_limit": 0,
            "max_progress": 0.2,
        },
        "trial": {
            "daily_ai_limit": 1,
            "lifetime_ai_limit": 0,
            "monthly_audio_limit": 1,
            "max_progress": 1.0,
        },
        "premium": {
            "daily_ai_limit": 2,
            "lifetime_ai_limit": 0,
            "monthly_audio_limit": 2,
            "max_progress": 1.0,
        },
    }


class Settings(BaseSettings):
    PROJECT_NAME: str = "Storytime Reading Core"
    VERSION: str = "0.4.0"

    # Database
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    @field_validator("SQLALCHEMY_DATABASE_URI", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> Any:
        if isinstance(v, str) and v:
            return v
        return "sqlite+aiosqlite:///./data/reading.db"

    LOG_LEVEL: str = "INFO"

    # Entitlements
    GUEST_MAX_PROGRESS: float = 0.30
    TIER_POLICIES: Dict[str, Dict[str, Any]] = Field(default_factory=_default_tier_policies)
    DEFAULT_TIER: str = "free"
    ENTITLEMENT_CACHE_TTL_SECONDS: float = 300.0

    # Reader
    COMPLETION_THRESHOLD: float = 0.95
    RESTORE_MIN_PROGRESS: float = 0.05
    RESTORE_SETTLE_DELAY_SECONDS: float = 1.0
    CORRECTIVE_SCROLL_DELAY_SECONDS: float = 0.1
    AUTOSAVE_INTERVAL_SECONDS: float = 10.0

    # Refresh
    REFRESH_MIN_INTERVAL_SECONDS: float = 5.0
    REFRESH_SETTLE_DELAY_SECONDS: float = Field(
        default=1.0,
        validation_alias=AliasChoices("REFRESH_SETTLE_DELAY_SECONDS", "REFRESH_DELAY_SECONDS"),
    )

    # Sessions / streaks
    STREAK_MIN_SESSION_SECONDS: int = 300
    MAX_SESSION_SECONDS: int = 4 * 60 * 60
    STALE_SESSION_AFTER_SECONDS: int = 15 * 60
    ENABLE_SCHEDULER: bool = False
    SCHEDULER_INTERVAL_SECONDS: int = 300

    # Remote collaborators
    BILLING_API_URL: Optional[str] = None
    BILLING_API_KEY: Optional[str] = None
    AUTH_API_URL: Optional[str] = None
    AUTH_API_KEY: Optional[str] = None
    HTTP_TIMEOUT_SECONDS: float = 10.0

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


settings = Settings()
