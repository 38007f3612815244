from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class TierPolicy(BaseModel):
    """
    Numeric limits for one subscription tier.

    AI generation: daily_ai_limit > 0 means the daily cap governs, otherwise
    lifetime_ai_limit > 0 means the lifetime cap governs, otherwise unbounded.
    """

    daily_ai_limit: int = Field(default=0, ge=0)
    lifetime_ai_limit: int = Field(default=0, ge=0)
    monthly_audio_limit: int = Field(default=0, ge=0)
    max_progress: float = Field(default=1.0, ge=0.0, le=1.0)

    @property
    def unlimited_reading(self) -> bool:
        return self.max_progress >= 1.0

    @property
    def unlimited_ai(self) -> bool:
        return self.daily_ai_limit == 0 and self.lifetime_ai_limit == 0


class TierSnapshot(BaseModel):
    """What the billing oracle says about a user right now."""

    user_id: str
    tier: str = "free"
    expires_at: Optional[datetime] = None

    @property
    def is_premium(self) -> bool:
        return self.tier != "free"


class AIStoryUsage(BaseModel):
    lifetime_used: int = 0
    lifetime_limit: int = 0
    today_used: int = 0
    daily_limit: int = 0
    can_generate: bool = False
    reason: Optional[str] = None
    reset_time: Optional[datetime] = None


class AudioUsage(BaseModel):
    monthly_used: int = 0
    monthly_limit: int = 0
    can_generate: bool = False
    reason: Optional[str] = None
    reset_date: Optional[datetime] = None


class StoryReadingUsage(BaseModel):
    can_read_full: bool = False
    max_progress_allowed: float = 0.0


class UsageLimits(BaseModel):
    user_id: str
    tier: str
    ai_stories: AIStoryUsage
    audio_generation: AudioUsage
    story_reading: StoryReadingUsage


class ReadingLimitDecision(BaseModel):
    """Output of the progress gate for one (caller, story) check. Never persisted."""

    can_read_full: bool
    max_progress_allowed: float = Field(ge=0.0, le=1.0)
    reason: str = ""

    @model_validator(mode="after")
    def _full_means_one(self):
        if self.can_read_full and self.max_progress_allowed != 1.0:
            raise ValueError("max_progress_allowed must be 1.0 when can_read_full")
        return self

    @classmethod
    def full(cls, reason: str = "") -> "ReadingLimitDecision":
        return cls(can_read_full=True, max_progress_allowed=1.0, reason=reason)

    @classmethod
    def limited(cls, max_progress: float, reason: str) -> "ReadingLimitDecision":
        return cls(can_read_full=False, max_progress_allowed=max(0.0, min(1.0, max_progress)), reason=reason)
