import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from reading_core.domain.errors import AuthUnavailable
from reading_core.domain.models.auth import AuthSession

logger = logging.getLogger(__name__)


class HttpAuthProvider:
    """
    Adapter for a token-based auth service.
    Implements AuthPort.

    - GET  {base}/user                                -> validates the access token
    - POST {base}/token?grant_type=refresh_token      -> exchanges the refresh token
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)
        self._session: Optional[AuthSession] = None

    def set_session(self, session: Optional[AuthSession]):
        """Installed by the sign-in flow; None means guest."""
        self._session = session

    async def get_session(self) -> Optional[AuthSession]:
        if self._session is None:
            return None
        try:
            response = await self._client.get(
                "/user", headers={"Authorization": f"Bearer {self._session.access_token}"}
            )
        except httpx.HTTPError as e:
            raise AuthUnavailable(f"Auth service unreachable: {e}") from e
        if response.status_code == 401:
            raise AuthUnavailable("Access token rejected")
        if response.status_code >= 400:
            raise AuthUnavailable(f"Auth service error {response.status_code}")
        return self._session

    async def refresh_session(self) -> AuthSession:
        if self._session is None or not self._session.refresh_token:
            raise AuthUnavailable("No refresh token available")
        try:
            response = await self._client.post(
                "/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": self._session.refresh_token},
            )
        except httpx.HTTPError as e:
            raise AuthUnavailable(f"Auth service unreachable: {e}") from e
        if response.status_code >= 400:
            raise AuthUnavailable(f"Token refresh rejected ({response.status_code})")

        try:
            data = response.json()
            expires_in = data.get("expires_in")
            self._session = AuthSession(
                user_id=(data.get("user") or {}).get("id", self._session.user_id),
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token", self._session.refresh_token),
                expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in) if expires_in else None,
            )
        except (KeyError, ValueError) as e:
            raise AuthUnavailable(f"Malformed token response: {e}") from e
        logger.info("Auth session refreshed user=%s", self._session.user_id)
        return self._session

    async def get_current_user_id(self) -> Optional[str]:
        return self._session.user_id if self._session else None

    async def aclose(self):
        await self._client.aclose()
