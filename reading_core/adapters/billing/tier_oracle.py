import logging
from typing import Callable, Optional

import httpx

from reading_core.core.clock import Clock, ensure_utc, utcnow
from reading_core.domain.errors import EntitlementUnavailable
from reading_core.domain.models.entitlement import TierSnapshot
from reading_core.domain.ports.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def effective_snapshot(snapshot: TierSnapshot, now, default_tier: str) -> TierSnapshot:
    """An expired paid tier reads as default_tier, whichever oracle reported it."""
    expires_at = ensure_utc(snapshot.expires_at)
    if expires_at is not None and expires_at <= now and snapshot.tier != default_tier:
        logger.info("Tier expired user=%s tier=%s", snapshot.user_id, snapshot.tier)
        return TierSnapshot(user_id=snapshot.user_id, tier=default_tier, expires_at=expires_at)
    return snapshot


class DatabaseTierOracle:
    """
    Resolves a user's tier from the users table.
    Implements TierOraclePort. An expired paid tier reads as "free".
    """

    def __init__(self, uow_factory: Callable[[], UnitOfWork], clock: Clock = utcnow, default_tier: str = "free"):
        self.uow_factory = uow_factory
        self.clock = clock
        self.default_tier = default_tier

    async def get_tier(self, user_id: str) -> TierSnapshot:
        try:
            async with self.uow_factory() as uow:
                user = await uow.users.get(user_id)
        except Exception as e:
            raise EntitlementUnavailable(f"Tier lookup failed for {user_id}: {e}") from e

        if user is None:
            return TierSnapshot(user_id=user_id, tier=self.default_tier)

        snapshot = TierSnapshot(
            user_id=user_id,
            tier=user.tier or self.default_tier,
            expires_at=ensure_utc(user.tier_expires_at),
        )
        return effective_snapshot(snapshot, self.clock(), self.default_tier)


class HttpTierOracle:
    """
    Adapter for a REST subscriber endpoint (GET {base}/subscribers/{user_id}).
    Implements TierOraclePort.

    Expected payload: {"tier": "premium", "expires_at": "2026-01-01T00:00:00Z"}
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        default_tier: str = "free",
        clock: Clock = utcnow,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)
        self.default_tier = default_tier
        self.clock = clock

    async def get_tier(self, user_id: str) -> TierSnapshot:
        try:
            response = await self._client.get(f"/subscribers/{user_id}")
        except httpx.HTTPError as e:
            raise EntitlementUnavailable(f"Billing oracle unreachable: {e}") from e

        if response.status_code == 404:
            return TierSnapshot(user_id=user_id, tier=self.default_tier)
        if response.status_code >= 400:
            raise EntitlementUnavailable(f"Billing oracle error {response.status_code}")

        try:
            data = response.json()
            snapshot = TierSnapshot(
                user_id=user_id,
                tier=data.get("tier") or self.default_tier,
                expires_at=data.get("expires_at"),
            )
        except ValueError as e:
            raise EntitlementUnavailable(f"Billing oracle returned malformed payload: {e}") from e
        return effective_snapshot(snapshot, self.clock(), self.default_tier)

    async def aclose(self):
        await self._client.aclose()
