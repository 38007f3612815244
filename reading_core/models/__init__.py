from reading_core.models.base import Base
from reading_core.models.reading import ReadingSession, UserAchievement
from reading_core.models.story import DailyStorySchedule, PersonalizedStory, Story, UserStory
from reading_core.models.user import UsageCounter, User

# Export all
__all__ = [
    "Base",
    "User",
    "UsageCounter",
    "Story",
    "PersonalizedStory",
    "DailyStorySchedule",
    "UserStory",
    "ReadingSession",
    "UserAchievement",
]
