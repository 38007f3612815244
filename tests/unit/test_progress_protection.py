import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from reading_core.core.scope import ViewScope
from reading_core.domain.models.entitlement import ReadingLimitDecision
from reading_core.domain.models.reading import StoryRef
from reading_core.services.progress_protection import ProgressProtection


def make_protection(decision, story=None):
    gate = MagicMock()
    gate.check_reading_limit = AsyncMock(return_value=decision)
    on_progress = MagicMock()
    on_paywall = MagicMock()
    scope = ViewScope("protection")
    protection = ProgressProtection(
        gate,
        scope,
        story or StoryRef(id="s1"),
        user_id="u1",
        on_progress_change=on_progress,
        on_paywall_triggered=on_paywall,
    )
    return protection, gate, on_progress, on_paywall, scope


@pytest.mark.asyncio
async def test_progress_within_limit_is_forwarded():
    protection, _, on_progress, on_paywall, scope = make_protection(ReadingLimitDecision.limited(0.5, "Upgrade"))

    outcome = await protection.protected_progress_change(0.4)

    assert outcome.accepted is True
    on_progress.assert_called_once_with(0.4)
    on_paywall.assert_not_called()
    scope.close()


@pytest.mark.asyncio
async def test_paywall_callback_is_deferred_to_next_tick():
    protection, _, on_progress, on_paywall, scope = make_protection(ReadingLimitDecision.limited(0.5, "Upgrade"))

    outcome = await protection.protected_progress_change(0.8)

    assert outcome.paywall is True
    assert outcome.accepted is False
    on_progress.assert_not_called()
    # Not yet: the callback waits for the next loop iteration
    on_paywall.assert_not_called()

    await asyncio.sleep(0)
    on_paywall.assert_called_once_with("Upgrade")
    scope.close()


@pytest.mark.asyncio
async def test_deferred_paywall_dies_with_scope():
    protection, _, _, on_paywall, scope = make_protection(ReadingLimitDecision.limited(0.3, "Sign up"))

    await protection.protected_progress_change(0.9)
    scope.close()
    await asyncio.sleep(0)

    on_paywall.assert_not_called()


@pytest.mark.asyncio
async def test_personalized_story_bypasses_gate():
    protection, gate, on_progress, _, scope = make_protection(
        ReadingLimitDecision.limited(0.3, "Sign up"), story=StoryRef(id="p1", is_personalized=True)
    )

    outcome = await protection.protected_progress_change(1.0)

    assert outcome.accepted is True
    gate.check_reading_limit.assert_not_called()
    on_progress.assert_called_once_with(1.0)
    scope.close()
