from datetime import date, timedelta
from typing import Iterable, List, Optional


class StreakRules:
    """
    Daily-engagement streaks over a set of active calendar days.
    Pure logic: callers pass already-qualified local dates.
    """

    @staticmethod
    def unique_days_desc(days: Iterable[date]) -> List[date]:
        return sorted(set(days), reverse=True)

    @staticmethod
    def current_streak(days: Iterable[date], today: date) -> int:
        """Consecutive days ending today; a day without activity breaks it."""
        active = set(days)
        streak = 0
        cursor = today
        while cursor in active:
            streak += 1
            cursor -= timedelta(days=1)
        return streak

    @staticmethod
    def longest_streak(days: Iterable[date]) -> int:
        ordered = sorted(set(days))
        if not ordered:
            return 0
        longest = run = 1
        for prev, cur in zip(ordered, ordered[1:]):
            if (cur - prev).days == 1:
                run += 1
            else:
                run = 1
            longest = max(longest, run)
        return longest

    @staticmethod
    def last_active(days: Iterable[date]) -> Optional[date]:
        ordered = StreakRules.unique_days_desc(days)
        return ordered[0] if ordered else None

    @staticmethod
    def is_qualifying(completed: bool, closed: bool, duration: int, min_seconds: int) -> bool:
        """A session counts toward the streak when completed, or closed after a long enough read."""
        if completed:
            return True
        return closed and min_seconds > 0 and (duration or 0) >= min_seconds
