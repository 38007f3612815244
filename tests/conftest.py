import datetime
import os

import pytest
import pytest_asyncio

# Set test environment variables BEFORE any reading_core imports
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TESTING", "1")

from reading_core.core.config import Settings
from reading_core.core.container import Container
from reading_core.models import Story, User
from tests.helpers import FakeClock, seed

DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Tests run against a free tier that allows half of each story
TEST_TIER_POLICIES = {
    "free": {"daily_ai_limit": 0, "lifetime_ai_limit": 2, "monthly_audio_limit": 0, "max_progress": 0.5},
    "trial": {"daily_ai_limit": 1, "lifetime_ai_limit": 0, "monthly_audio_limit": 1, "max_progress": 1.0},
    "premium": {"daily_ai_limit": 2, "lifetime_ai_limit": 0, "monthly_audio_limit": 2, "max_progress": 1.0},
}


@pytest.fixture
def settings():
    return Settings(
        SQLALCHEMY_DATABASE_URI=DATABASE_URL,
        TIER_POLICIES=TEST_TIER_POLICIES,
        CORRECTIVE_SCROLL_DELAY_SECONDS=0.01,
        RESTORE_SETTLE_DELAY_SECONDS=0.01,
        AUTOSAVE_INTERVAL_SECONDS=60,
        REFRESH_SETTLE_DELAY_SECONDS=0,
        ENABLE_SCHEDULER=False,
        BILLING_API_URL=None,
        AUTH_API_URL=None,
    )


@pytest.fixture
def clock():
    # Tuesday 2026-03-10 12:00 UTC
    return FakeClock(datetime.datetime(2026, 3, 10, 12, 0, tzinfo=datetime.timezone.utc))


@pytest_asyncio.fixture
async def container(settings, clock):
    c = Container(settings, clock=clock)
    await c.start()
    yield c
    await c.shutdown()


@pytest.fixture
def uow_factory(container):
    return container.uow_factory


@pytest_asyncio.fixture
async def free_user(uow_factory):
    user = User(id="u-free", name="Mia", tier="free", timezone="UTC")
    await seed(uow_factory, user)
    return user


@pytest_asyncio.fixture
async def premium_user(uow_factory):
    user = User(id="u-premium", name="Leo", tier="premium", timezone="UTC")
    await seed(uow_factory, user)
    return user


@pytest_asyncio.fixture
async def daily_story(uow_factory):
    story = Story(id="s-daily", title="The Moon Fox", is_daily_free=True, daily_order=1, categories=["animals"])
    await seed(uow_factory, story)
    return story


@pytest_asyncio.fixture
async def catalog_story(uow_factory):
    story = Story(id="s-catalog", title="The Sleepy Dragon", categories=["fantasy"])
    await seed(uow_factory, story)
    return story
