from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class StoryRef(BaseModel):
    """Minimal view of a story the reading core needs to gate it."""

    id: str
    is_personalized: bool = False
    title: Optional[str] = None


class ScrollGeometry(BaseModel):
    offset: float = 0.0
    viewport_height: float = 0.0
    content_height: float = 0.0

    @property
    def max_offset(self) -> float:
        return max(0.0, self.content_height - self.viewport_height)


class ProgressOutcome(BaseModel):
    """Result of one scroll/progress event after gating."""

    progress: float = Field(ge=0.0, le=1.0)
    accepted: bool = True
    persisted: bool = False
    paywall: bool = False
    reason: Optional[str] = None
    stale: bool = False
    corrective_offset: Optional[float] = None


class StreakData(BaseModel):
    current_streak: int = 0
    longest_streak: int = 0
    has_read_today: bool = False
    last_active_date: Optional[date] = None


class MostReadStory(BaseModel):
    story_id: str
    session_count: int
    total_time: int


class ReadingStats(BaseModel):
    total_sessions: int = 0
    completed_sessions: int = 0
    open_sessions: int = 0
    total_reading_time: int = 0
    average_session_time: float = 0.0
    daily_reading_time: int = 0
    weekly_reading_time: int = 0
    most_read_story: Optional[MostReadStory] = None


class AchievementStatus(BaseModel):
    id: str
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None


class AchievementReport(BaseModel):
    user_id: str
    granted: List[str] = Field(default_factory=list)
