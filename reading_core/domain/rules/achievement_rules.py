from dataclasses import dataclass, field
from typing import Callable, Dict, List, Set


@dataclass
class AchievementFacts:
    """Aggregates an unlock predicate may look at. Built by the caller at trigger time."""

    completed_stories: int = 0
    current_streak: int = 0
    total_reading_seconds: int = 0
    session_local_hour: int | None = None
    categories_read: Set[str] = field(default_factory=set)
    session_completed: bool = False


@dataclass(frozen=True)
class AchievementDef:
    id: str
    icon_url: str
    predicate: Callable[[AchievementFacts], bool]


NIGHT_OWL_HOUR = 20
STORY_LOVER_COUNT = 10
WEEK_STREAK_DAYS = 7
BOOKWORM_SECONDS = 10 * 60 * 60
EXPLORER_CATEGORIES = 5


class AchievementRules:
    CATALOG: Dict[str, AchievementDef] = {
        a.id: a
        for a in [
            AchievementDef(
                "first_story",
                "https://cdn-icons-png.flaticon.com/512/2232/2232688.png",
                lambda f: f.session_completed or f.completed_stories >= 1,
            ),
            AchievementDef(
                "week_streak",
                "https://cdn-icons-png.flaticon.com/512/2232/2232691.png",
                lambda f: f.current_streak >= WEEK_STREAK_DAYS,
            ),
            AchievementDef(
                "story_lover",
                "https://cdn-icons-png.flaticon.com/512/2232/2232692.png",
                lambda f: f.completed_stories >= STORY_LOVER_COUNT,
            ),
            AchievementDef(
                "night_owl",
                "https://cdn-icons-png.flaticon.com/512/2232/2232689.png",
                lambda f: f.session_local_hour is not None and f.session_local_hour >= NIGHT_OWL_HOUR,
            ),
            AchievementDef(
                "bookworm",
                "https://cdn-icons-png.flaticon.com/512/2232/2232687.png",
                lambda f: f.total_reading_seconds >= BOOKWORM_SECONDS,
            ),
            AchievementDef(
                "explorer",
                "https://cdn-icons-png.flaticon.com/512/2232/2232690.png",
                lambda f: len(f.categories_read) >= EXPLORER_CATEGORIES,
            ),
        ]
    }

    @staticmethod
    def is_known(achievement_id: str) -> bool:
        return achievement_id in AchievementRules.CATALOG

    @staticmethod
    def earned(facts: AchievementFacts) -> List[str]:
        """Ids whose predicate holds, in catalog order."""
        return [a.id for a in AchievementRules.CATALOG.values() if a.predicate(facts)]
