import datetime

from reading_core.models import ReadingSession


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime.datetime):
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs) -> datetime.datetime:
        self.now = self.now + datetime.timedelta(seconds=seconds, **kwargs)
        return self.now


class FakeMonotonic:
    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float):
        self.value += seconds


async def seed(uow_factory, *entities):
    async with uow_factory() as uow:
        for entity in entities:
            uow.session.add(entity)


def closed_session(user_id, story_id, started_at, duration, completed=False, **kwargs):
    return ReadingSession(
        user_id=user_id,
        story_id=story_id,
        started_at=started_at,
        last_seen_at=started_at + datetime.timedelta(seconds=duration),
        ended_at=started_at + datetime.timedelta(seconds=duration),
        duration=duration,
        completed=completed,
        close_reason="unmount",
        **kwargs,
    )
