from typing import Protocol

from reading_core.domain.models.entitlement import TierSnapshot


class TierOraclePort(Protocol):
    """
    Interface for the billing/subscription oracle.
    Treated as opaque and best-effort: raises EntitlementUnavailable on failure.
    """

    async def get_tier(self, user_id: str) -> TierSnapshot:
        ...
