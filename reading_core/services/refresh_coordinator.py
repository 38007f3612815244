"""
Re-validates the auth session and reloads app data when the app comes back.

Triggers: background/inactive -> active, network reconnect, dependency change.
Overlapping triggers collapse into one run (in-flight flag) and runs closer
than REFRESH_MIN_INTERVAL_SECONDS to the previous completed run are skipped.
"""

import asyncio
import inspect
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from reading_core.core.config import Settings
from reading_core.core.context import set_trace_id
from reading_core.core.event_bus import APP_STATE_CHANGED, LOCALE_CHANGED, NETWORK_CHANGED, EventBus
from reading_core.domain.errors import AuthRefreshFailed, AuthUnavailable
from reading_core.domain.ports.auth import AuthPort
from reading_core.domain.ports.reader import ErrorReporterPort

logger = logging.getLogger(__name__)

SKIP_IN_FLIGHT = "in_flight"
SKIP_TOO_SOON = "too_soon"
SKIP_AUTH_FAILED = "auth_failed"

INACTIVE_STATES = ("background", "inactive")


@dataclass
class RefreshResult:
    ran: bool
    skipped_reason: Optional[str] = None
    session_valid: bool = False
    callback_ran: bool = False
    error: Optional[str] = None


class RefreshCoordinator:
    def __init__(
        self,
        config: Settings,
        auth: AuthPort,
        on_refresh: Callable[[], Any],
        reporter: Optional[ErrorReporterPort] = None,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.auth = auth
        self.on_refresh = on_refresh
        self.reporter = reporter
        self.monotonic = monotonic
        self.sleep = sleep

        self.is_refreshing = False
        self.last_refresh_at: Optional[float] = None
        self.runs = 0

        self._app_state = "active"
        self._online: Optional[bool] = None
        self._dependencies: Optional[Tuple[Any, ...]] = None
        self._unsubscribers: List[Callable[[], None]] = []

    # --- Session ---

    async def _refresh_session(self) -> bool:
        try:
            session = await self.auth.get_session()
            if session is None:
                logger.info("No active session, refreshing as guest")
            return True
        except AuthUnavailable as e:
            logger.warning("Session read failed, trying token refresh: %s", e)
            if self.reporter:
                self.reporter.capture_exception(e, stage="get_session")

        try:
            await self.auth.refresh_session()
            logger.info("Session refreshed")
            return True
        except AuthUnavailable as e:
            error = AuthRefreshFailed(str(e))
            logger.error("Token refresh failed: %s", e)
            if self.reporter:
                self.reporter.capture_exception(error, stage="refresh_session")
            return False

    # --- Refresh ---

    async def refresh(self) -> RefreshResult:
        """Never raises."""
        if self.is_refreshing:
            logger.debug("Refresh already in flight, skipping")
            return RefreshResult(ran=False, skipped_reason=SKIP_IN_FLIGHT)

        now = self.monotonic()
        if self.last_refresh_at is not None and now - self.last_refresh_at < self.config.REFRESH_MIN_INTERVAL_SECONDS:
            logger.debug("Refresh too soon since last run, skipping")
            return RefreshResult(ran=False, skipped_reason=SKIP_TOO_SOON)

        self.is_refreshing = True
        set_trace_id(f"refresh-{uuid.uuid4().hex[:8]}")
        result = RefreshResult(ran=True)
        try:
            result.session_valid = await self._refresh_session()
            if not result.session_valid:
                result.skipped_reason = SKIP_AUTH_FAILED
                return result

            await self.sleep(self.config.REFRESH_SETTLE_DELAY_SECONDS)
            outcome = self.on_refresh()
            if inspect.isawaitable(outcome):
                await outcome
            result.callback_ran = True
            return result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Refresh callback failed: %s", e)
            if self.reporter:
                self.reporter.capture_exception(e, stage="on_refresh")
            result.error = str(e)
            return result
        finally:
            self.is_refreshing = False
            self.last_refresh_at = self.monotonic()
            self.runs += 1

    # --- Triggers ---

    async def on_app_state_change(self, state: str, **_: Any) -> Optional[RefreshResult]:
        previous, self._app_state = self._app_state, state
        if previous in INACTIVE_STATES and state == "active":
            logger.info("App became active, refreshing")
            return await self.refresh()
        return None

    async def on_network_change(
        self, is_connected: bool, is_internet_reachable: Optional[bool] = None, **_: Any
    ) -> Optional[RefreshResult]:
        online = bool(is_connected) and bool(is_internet_reachable)
        previous, self._online = self._online, online
        if online and previous is False:
            logger.info("Network reconnected, refreshing")
            return await self.refresh()
        return None

    async def on_dependencies_changed(self, *dependencies: Any, **named: Any) -> Optional[RefreshResult]:
        current = dependencies + tuple(sorted(named.items()))
        if not current or current == self._dependencies:
            return None
        self._dependencies = current
        return await self.refresh()

    # --- Bus wiring ---

    def start(self, bus: EventBus) -> None:
        if self._unsubscribers:
            return
        self._unsubscribers = [
            bus.subscribe(APP_STATE_CHANGED, self.on_app_state_change),
            bus.subscribe(NETWORK_CHANGED, self.on_network_change),
            bus.subscribe(LOCALE_CHANGED, self.on_dependencies_changed),
        ]

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
