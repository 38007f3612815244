import asyncio

import pytest
from unittest.mock import MagicMock, patch

from reading_core.core.clock import ensure_utc
from reading_core.domain.models.reading import StoryRef
from reading_core.models import UserStory
from tests.helpers import seed


async def history(container, user_id):
    async with container.uow_factory() as uow:
        return await uow.sessions.history(user_id)


@pytest.mark.asyncio
async def test_background_closes_session_with_elapsed_time(container, clock, free_user, catalog_story):
    view = MagicMock()
    reader = container.reader_view(view, StoryRef(id=catalog_story.id), user_id=free_user.id)

    await reader.mount()
    assert reader.session_id is not None

    clock.advance(42)
    await reader.on_app_state_change("background")

    rows = await history(container, free_user.id)
    assert len(rows) == 1
    assert rows[0].duration == 42
    assert rows[0].ended_at is not None
    assert rows[0].close_reason == "background"
    assert reader.session_id is None

    # Coming back opens a fresh session
    await reader.on_app_state_change("active")
    assert reader.session_id is not None
    await reader.unmount()

    rows = await history(container, free_user.id)
    assert len(rows) == 2
    assert all(row.ended_at is not None for row in rows)


@pytest.mark.asyncio
async def test_guest_view_opens_no_session(container, catalog_story):
    reader = container.reader_view(MagicMock(), StoryRef(id=catalog_story.id))
    await reader.mount()
    assert reader.session_id is None
    await reader.unmount()


@pytest.mark.asyncio
async def test_mount_restores_saved_progress(container, free_user, catalog_story):
    await seed(container.uow_factory, UserStory(user_id=free_user.id, story_id=catalog_story.id, progress=0.4))
    view = MagicMock()
    reader = container.reader_view(view, StoryRef(id=catalog_story.id), user_id=free_user.id)

    await reader.mount()
    reader.handle_layout(1000)
    reader.handle_content_size(2000)
    await asyncio.sleep(0.05)

    view.scroll_to.assert_called_once_with(pytest.approx(400), animated=True)
    await reader.unmount()


@pytest.mark.asyncio
async def test_unmount_cancels_pending_timers(container, catalog_story):
    view = MagicMock()
    reader = container.reader_view(view, StoryRef(id=catalog_story.id))
    await reader.mount()

    await reader.handle_scroll(900, 1000, 2000)
    await reader.unmount()
    await asyncio.sleep(0.05)

    view.scroll_to.assert_not_called()
    assert reader.scope.pending == 0


@pytest.mark.asyncio
async def test_completion_closes_session_and_grants_first_story(container, clock, premium_user, catalog_story):
    view = MagicMock()
    reader = container.reader_view(view, StoryRef(id=catalog_story.id), user_id=premium_user.id)
    await reader.mount()

    clock.advance(400)
    outcome = await reader.handle_scroll(960, 1000, 2000)

    assert outcome.progress == pytest.approx(0.96)
    assert reader.completed is True
    assert reader.session_id is None
    assert "first_story" in reader.last_report.granted

    rows = await history(container, premium_user.id)
    assert rows[0].completed is True
    assert rows[0].close_reason == "completed"

    streak = await container.stats.get_streak(premium_user.id)
    assert streak.current_streak == 1
    assert streak.has_read_today is True

    async with container.uow_factory() as uow:
        progress = await uow.progress.find(premium_user.id, catalog_story.id)
    assert progress.completed is True
    await reader.unmount()


@pytest.mark.asyncio
async def test_autosave_heartbeat_stamps_last_seen(container, clock, free_user, catalog_story):
    reader = container.reader_view(MagicMock(), StoryRef(id=catalog_story.id), user_id=free_user.id)
    await reader.mount()
    assert reader.scope.pending == 1  # autosave timer

    clock.advance(25)
    await reader._autosave()

    rows = await history(container, free_user.id)
    assert rows[0].ended_at is None
    assert ensure_utc(rows[0].last_seen_at) == clock()
    assert rows[0].duration == 25
    # Rescheduled for the next tick
    assert reader.scope.pending == 1
    await reader.unmount()


@pytest.mark.asyncio
async def test_background_during_mount_keeps_no_session_open(container, clock, free_user, catalog_story):
    reader = container.reader_view(MagicMock(), StoryRef(id=catalog_story.id), user_id=free_user.id)

    mounting = asyncio.create_task(reader.mount())
    await asyncio.sleep(0)
    await reader.on_app_state_change("background")
    await mounting

    assert reader.session_id is None
    assert not any(row.ended_at is None for row in await history(container, free_user.id))

    clock.advance(3600)
    await reader.on_app_state_change("active")
    assert reader.session_id is not None
    clock.advance(30)
    await reader.unmount()

    durations = [row.duration for row in await history(container, free_user.id)]
    assert 3600 not in durations
    assert max(durations) == 30


@pytest.mark.asyncio
async def test_session_opened_while_backgrounding_is_closed(container, clock, free_user, catalog_story):
    sessions = container.sessions
    real_open = sessions.open_session
    opened = asyncio.Event()
    release = asyncio.Event()

    async def slow_open(*args, **kwargs):
        opened.set()
        await release.wait()
        return await real_open(*args, **kwargs)

    reader = container.reader_view(MagicMock(), StoryRef(id=catalog_story.id), user_id=free_user.id)
    with patch.object(sessions, "open_session", side_effect=slow_open):
        mounting = asyncio.create_task(reader.mount())
        await opened.wait()
        await reader.on_app_state_change("background")
        release.set()
        await mounting

    assert reader.session_id is None
    assert reader.scope.pending == 0
    rows = await history(container, free_user.id)
    assert len(rows) == 1
    assert rows[0].ended_at is not None
    assert rows[0].close_reason == "background"
    await reader.unmount()


@pytest.mark.asyncio
async def test_navigate_away_closes_session_for_good(container, clock, free_user, catalog_story):
    reader = container.reader_view(MagicMock(), StoryRef(id=catalog_story.id), user_id=free_user.id)
    await reader.mount()

    clock.advance(90)
    await reader.navigate_away()

    assert reader.session_id is None
    assert reader.scope.pending == 0
    await reader.on_app_state_change("active")
    assert reader.session_id is None

    rows = await history(container, free_user.id)
    assert len(rows) == 1
    assert rows[0].duration == 90
    assert rows[0].close_reason == "navigation"
