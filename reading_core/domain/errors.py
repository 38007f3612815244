class ReadingCoreError(Exception):
    """Base class for every failure raised inside the reading core."""


class EntitlementUnavailable(ReadingCoreError):
    """Tier oracle or usage store unreachable. Callers degrade to the guest ceiling."""


class AuthUnavailable(ReadingCoreError):
    """Auth/session provider unreachable or returned an error."""


class AuthRefreshFailed(ReadingCoreError):
    """Session could neither be read nor refreshed."""


class SessionWriteFailed(ReadingCoreError):
    """A reading-session record could not be written."""

    def __init__(self, message: str, session_id: str | None = None):
        super().__init__(message)
        self.session_id = session_id


class AchievementGrantConflict(ReadingCoreError):
    """Duplicate (user_id, achievement_id) insert. Means the grant already exists."""

    def __init__(self, user_id: str, achievement_id: str):
        super().__init__(f"Achievement {achievement_id} already granted to {user_id}")
        self.user_id = user_id
        self.achievement_id = achievement_id
