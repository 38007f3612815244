from typing import Optional, Protocol

from reading_core.domain.models.auth import AuthSession


class AuthPort(Protocol):
    """
    Interface for the hosted auth/session provider.
    Every method raises AuthUnavailable when the provider cannot answer.
    """

    async def get_session(self) -> Optional[AuthSession]:
        """Current session, or None when signed out (guest)."""
        ...

    async def refresh_session(self) -> AuthSession:
        """Exchange the refresh token for a new session."""
        ...

    async def get_current_user_id(self) -> Optional[str]:
        ...
