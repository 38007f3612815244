import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from reading_core.core.scope import ViewScope
from reading_core.domain.models.entitlement import ReadingLimitDecision
from reading_core.domain.models.reading import StoryRef
from reading_core.services.scroll_tracker import ScrollProgressTracker

VIEWPORT = 1000.0
CONTENT = 2000.0  # 1000px scrollable: offset N -> progress N/1000


def make_tracker(settings, container, story_id, user_id=None, gate=None, store=None):
    view = MagicMock()
    scope = ViewScope("test")
    tracker = ScrollProgressTracker(
        settings,
        gate or container.gate,
        store or container.store,
        scope,
        view,
        StoryRef(id=story_id),
        user_id=user_id,
    )
    return tracker, view, scope


@pytest.mark.asyncio
async def test_guest_scroll_is_clamped_with_single_paywall(settings, container, daily_story, catalog_story):
    tracker, view, scope = make_tracker(settings, container, catalog_story.id)

    outcomes = []
    for offset in range(0, 501, 50):
        outcomes.append(await tracker.handle_scroll(offset, VIEWPORT, CONTENT))

    assert max(o.progress for o in outcomes) == pytest.approx(0.30)
    assert tracker.progress == pytest.approx(0.30)
    assert tracker.paywall_events == 1
    view.show_paywall.assert_called_once()
    assert view.show_paywall.call_args.args[0]

    clamped = [o for o in outcomes if o.paywall]
    assert clamped[0].corrective_offset == pytest.approx(300)
    # Guests have no progress key
    assert not any(o.persisted for o in outcomes)

    await asyncio.sleep(0.05)
    view.scroll_to.assert_called_with(pytest.approx(300), animated=True)
    scope.close()


@pytest.mark.asyncio
async def test_daily_story_is_fully_readable_for_free_user(settings, container, free_user, daily_story):
    tracker, view, scope = make_tracker(settings, container, daily_story.id, user_id=free_user.id)

    outcome = await tracker.handle_scroll(900, VIEWPORT, CONTENT)

    assert outcome.paywall is False
    assert outcome.progress == pytest.approx(0.90)
    assert outcome.persisted is True
    view.show_paywall.assert_not_called()
    assert await container.store.load(free_user.id, daily_story.id) == pytest.approx(0.90)
    scope.close()


@pytest.mark.asyncio
async def test_free_user_is_not_persisted_beyond_ceiling(settings, container, free_user, catalog_story):
    tracker, view, scope = make_tracker(settings, container, catalog_story.id, user_id=free_user.id)

    await tracker.handle_scroll(400, VIEWPORT, CONTENT)
    outcome = await tracker.handle_scroll(800, VIEWPORT, CONTENT)

    assert outcome.paywall is True
    assert outcome.progress == pytest.approx(0.5)
    assert await container.store.load(free_user.id, catalog_story.id) == pytest.approx(0.5)
    scope.close()


@pytest.mark.asyncio
async def test_paywall_fires_again_after_returning_below_ceiling(settings, container, catalog_story):
    tracker, view, scope = make_tracker(settings, container, catalog_story.id)

    await tracker.handle_scroll(500, VIEWPORT, CONTENT)
    await tracker.handle_scroll(600, VIEWPORT, CONTENT)
    await tracker.handle_scroll(100, VIEWPORT, CONTENT)
    await tracker.handle_scroll(700, VIEWPORT, CONTENT)

    assert tracker.paywall_events == 2
    scope.close()


@pytest.mark.asyncio
async def test_stale_gate_result_is_dropped(settings):
    release = asyncio.Event()
    calls = 0

    async def slow_then_fast(user_id, story):
        nonlocal calls
        calls += 1
        if calls == 1:
            await release.wait()
        return ReadingLimitDecision.full()

    gate = MagicMock()
    gate.check_reading_limit = AsyncMock(side_effect=slow_then_fast)
    store = MagicMock()
    store.save = AsyncMock()
    tracker, view, scope = make_tracker(settings, None, "s1", user_id="u1", gate=gate, store=store)

    first = asyncio.create_task(tracker.handle_scroll(100, VIEWPORT, CONTENT))
    await asyncio.sleep(0)
    second = await tracker.handle_scroll(200, VIEWPORT, CONTENT)
    release.set()
    first_outcome = await first

    assert second.progress == pytest.approx(0.2)
    assert first_outcome.stale is True
    assert first_outcome.accepted is False
    assert tracker.progress == pytest.approx(0.2)
    store.save.assert_awaited_once_with("u1", "s1", pytest.approx(0.2))
    scope.close()


@pytest.mark.asyncio
async def test_overlapping_gate_calls_clamp_during_continuous_scroll(settings):
    releases = []

    async def slow_limited(user_id, story):
        release = asyncio.Event()
        releases.append(release)
        await release.wait()
        return ReadingLimitDecision.limited(0.3, "Sign in to keep reading")

    gate = MagicMock()
    gate.check_reading_limit = AsyncMock(side_effect=slow_limited)
    tracker, view, scope = make_tracker(settings, None, "s1", gate=gate, store=MagicMock())

    burst = []
    for offset in (200, 500, 800):
        burst.append(asyncio.create_task(tracker.handle_scroll(offset, VIEWPORT, CONTENT)))
        await asyncio.sleep(0)
    assert len(releases) == 3

    # Applied while the newest call is still in flight
    releases[1].set()
    clamped = await burst[1]
    assert clamped.accepted is True
    assert clamped.paywall is True
    assert tracker.progress == pytest.approx(0.3)
    view.show_paywall.assert_called_once()

    releases[0].set()
    assert (await burst[0]).stale is True

    releases[2].set()
    last = await burst[2]
    assert last.accepted is True
    assert last.progress == pytest.approx(0.3)
    assert tracker.paywall_events == 1
    scope.close()


@pytest.mark.asyncio
async def test_content_fitting_viewport_counts_as_read(settings):
    gate = MagicMock()
    gate.check_reading_limit = AsyncMock(return_value=ReadingLimitDecision.full())
    store = MagicMock()
    store.save = AsyncMock()
    tracker, view, scope = make_tracker(settings, None, "s1", user_id="u1", gate=gate, store=store)

    outcome = await tracker.handle_scroll(0, 1000, 600)
    assert outcome.progress == 1.0
    view.on_progress.assert_called_with(1.0)
    scope.close()


@pytest.mark.asyncio
async def test_personalized_story_skips_gate(settings):
    gate = MagicMock()
    gate.check_reading_limit = AsyncMock()
    store = MagicMock()
    store.save = AsyncMock()
    view = MagicMock()
    scope = ViewScope("test")
    tracker = ScrollProgressTracker(
        settings, gate, store, scope, view, StoryRef(id="p1", is_personalized=True), user_id="u1"
    )

    outcome = await tracker.handle_scroll(1000, VIEWPORT, CONTENT)
    assert outcome.progress == 1.0
    gate.check_reading_limit.assert_not_called()
    scope.close()


@pytest.mark.asyncio
async def test_closing_scope_cancels_corrective_scroll(settings, container, catalog_story):
    tracker, view, scope = make_tracker(settings, container, catalog_story.id)

    await tracker.handle_scroll(800, VIEWPORT, CONTENT)
    assert scope.pending == 1
    scope.close()
    await asyncio.sleep(0.05)

    view.scroll_to.assert_not_called()
    assert scope.pending == 0


@pytest.mark.asyncio
async def test_restore_waits_for_measurements_and_runs_once(settings):
    tracker, view, scope = make_tracker(settings, None, "s1", user_id="u1", gate=MagicMock(), store=MagicMock())

    tracker.restore_saved_progress(0.5)
    assert tracker.restore_scheduled is False

    tracker.handle_layout(1000)
    assert tracker.restore_scheduled is False
    tracker.handle_content_size(3000)
    assert tracker.restore_scheduled is True

    # Second arm on the same open is ignored
    tracker.restore_saved_progress(0.9)
    await asyncio.sleep(0.05)

    view.scroll_to.assert_called_once_with(pytest.approx(1000), animated=True)
    assert tracker.progress == pytest.approx(0.5)
    scope.close()


@pytest.mark.asyncio
async def test_small_saved_progress_is_not_restored(settings):
    tracker, view, scope = make_tracker(settings, None, "s1", user_id="u1", gate=MagicMock(), store=MagicMock())

    tracker.restore_saved_progress(0.04)
    tracker.handle_layout(1000)
    tracker.handle_content_size(3000)
    await asyncio.sleep(0.05)

    assert tracker.restore_scheduled is False
    view.scroll_to.assert_not_called()
    scope.close()
