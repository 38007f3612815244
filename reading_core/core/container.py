import logging
from typing import Any, Callable, List, Optional

from reading_core.adapters.auth.http_auth import HttpAuthProvider
from reading_core.adapters.billing.tier_oracle import DatabaseTierOracle, HttpTierOracle
from reading_core.adapters.observability.log_reporter import LoggingErrorReporter
from reading_core.adapters.persistence.sqlite.unit_of_work import SqlAlchemyUnitOfWork
from reading_core.core.clock import Clock, utcnow
from reading_core.core.config import Settings
from reading_core.core.database import create_engine_for, create_session_factory, init_models
from reading_core.core.event_bus import EventBus
from reading_core.domain.models.reading import StoryRef
from reading_core.domain.ports.auth import AuthPort
from reading_core.domain.ports.billing import TierOraclePort
from reading_core.domain.ports.reader import ErrorReporterPort, ReaderViewPort
from reading_core.services.achievement_service import AchievementEngine
from reading_core.services.daily_story_service import DailyStoryService
from reading_core.services.entitlement_service import EntitlementResolver
from reading_core.services.progress_gate import ProgressGate
from reading_core.services.progress_store import ProgressStore
from reading_core.services.reader_view import ReaderViewController
from reading_core.services.refresh_coordinator import RefreshCoordinator
from reading_core.services.scheduler import SessionReaper
from reading_core.services.session_service import SessionManager
from reading_core.services.streak_service import StreakStatsAggregator

logger = logging.getLogger(__name__)


class Container:
    """
    Wires adapters into services. One per app process (or per test).
    Services are lazy singletons scoped to this container.
    """

    def __init__(
        self,
        config: Settings,
        auth: Optional[AuthPort] = None,
        tier_oracle: Optional[TierOraclePort] = None,
        reporter: Optional[ErrorReporterPort] = None,
        clock: Clock = utcnow,
    ):
        self.config = config
        self.clock = clock
        self.bus = EventBus()
        self.engine = create_engine_for(config)
        self.session_factory = create_session_factory(self.engine)

        self._auth = auth
        self._tier_oracle = tier_oracle
        self._reporter = reporter

        # Lazy Singletons
        self._resolver = None
        self._daily_stories = None
        self._gate = None
        self._store = None
        self._sessions = None
        self._stats = None
        self._achievements = None
        self._reaper = None
        self._coordinators: List[RefreshCoordinator] = []
        # HTTP adapters built here; injected ones belong to the caller
        self._owned_clients: List[Any] = []

    def uow_factory(self) -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(self.session_factory)

    # --- Adapters ---

    @property
    def reporter(self) -> ErrorReporterPort:
        if not self._reporter:
            self._reporter = LoggingErrorReporter()
        return self._reporter

    @property
    def tier_oracle(self) -> TierOraclePort:
        if not self._tier_oracle:
            if self.config.BILLING_API_URL:
                self._tier_oracle = HttpTierOracle(
                    self.config.BILLING_API_URL,
                    api_key=self.config.BILLING_API_KEY,
                    timeout=self.config.HTTP_TIMEOUT_SECONDS,
                    default_tier=self.config.DEFAULT_TIER,
                    clock=self.clock,
                )
                self._owned_clients.append(self._tier_oracle)
            else:
                self._tier_oracle = DatabaseTierOracle(
                    self.uow_factory, clock=self.clock, default_tier=self.config.DEFAULT_TIER
                )
        return self._tier_oracle

    @property
    def auth(self) -> AuthPort:
        if not self._auth:
            if not self.config.AUTH_API_URL:
                raise RuntimeError("AUTH_API_URL is not configured and no auth provider was injected")
            self._auth = HttpAuthProvider(
                self.config.AUTH_API_URL,
                api_key=self.config.AUTH_API_KEY,
                timeout=self.config.HTTP_TIMEOUT_SECONDS,
            )
            self._owned_clients.append(self._auth)
        return self._auth

    # --- Services ---

    @property
    def resolver(self) -> EntitlementResolver:
        if not self._resolver:
            self._resolver = EntitlementResolver(self.config, self.tier_oracle, self.uow_factory, clock=self.clock)
        return self._resolver

    @property
    def daily_stories(self) -> DailyStoryService:
        if not self._daily_stories:
            self._daily_stories = DailyStoryService(self.uow_factory, clock=self.clock)
        return self._daily_stories

    @property
    def gate(self) -> ProgressGate:
        if not self._gate:
            self._gate = ProgressGate(self.config, self.resolver, self.daily_stories, self.reporter)
        return self._gate

    @property
    def store(self) -> ProgressStore:
        if not self._store:
            self._store = ProgressStore(self.uow_factory)
        return self._store

    @property
    def sessions(self) -> SessionManager:
        if not self._sessions:
            self._sessions = SessionManager(self.config, self.uow_factory, clock=self.clock, reporter=self.reporter)
        return self._sessions

    @property
    def stats(self) -> StreakStatsAggregator:
        if not self._stats:
            self._stats = StreakStatsAggregator(self.config, self.uow_factory, clock=self.clock, reporter=self.reporter)
        return self._stats

    @property
    def achievements(self) -> AchievementEngine:
        if not self._achievements:
            self._achievements = AchievementEngine(
                self.uow_factory, self.stats, clock=self.clock, reporter=self.reporter
            )
        return self._achievements

    @property
    def reaper(self) -> SessionReaper:
        if not self._reaper:
            self._reaper = SessionReaper(self.config, self.sessions)
        return self._reaper

    # --- Per-view / per-screen factories ---

    def reader_view(self, view: ReaderViewPort, story: StoryRef, user_id: Optional[str] = None) -> ReaderViewController:
        return ReaderViewController(
            self.config,
            self.gate,
            self.store,
            self.sessions,
            self.achievements,
            view,
            story,
            user_id=user_id,
            reporter=self.reporter,
        )

    def refresh_coordinator(self, on_refresh: Callable[[], Any]) -> RefreshCoordinator:
        """Coordinator subscribed to this container's bus; stopped on shutdown()."""
        coordinator = RefreshCoordinator(self.config, self.auth, on_refresh, reporter=self.reporter)
        coordinator.start(self.bus)
        self._coordinators.append(coordinator)
        return coordinator

    # --- Lifecycle ---

    async def start(self, user_id: Optional[str] = None) -> None:
        await init_models(self.engine)
        if user_id:
            await self.sessions.reconcile_abandoned(user_id)
        if self.config.ENABLE_SCHEDULER:
            self.reaper.start()
        logger.info("%s v%s started", self.config.PROJECT_NAME, self.config.VERSION)

    async def shutdown(self) -> None:
        for coordinator in self._coordinators:
            coordinator.stop()
        self._coordinators = []
        if self._reaper:
            self._reaper.shutdown()
        self.bus.close()
        for client in self._owned_clients:
            await client.aclose()
        self._owned_clients = []
        await self.engine.dispose()
        logger.info("%s shut down", self.config.PROJECT_NAME)


def build_container(config: Optional[Settings] = None, **overrides: Any) -> Container:
    if config is None:
        from reading_core.core.config import settings as config
    return Container(config, **overrides)
