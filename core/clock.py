"""Single source of "now" for window checks and order numbering.

All timestamps are naive UTC, matching the ``DateTime`` columns.
"""
from datetime import datetime, timedelta


class Clock:
    def now(self) -> datetime:
        return datetime.utcnow()


class FrozenClock(Clock):
    """A clock pinned to one instant; ``advance`` moves it forward."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance(self, **kwargs) -> None:
        self.instant = self.instant + timedelta(**kwargs)


clock = Clock()


def set_clock(new_clock: Clock) -> Clock:
    """Swap the process clock, returning the previous one."""
    global clock
    previous = clock
    clock = new_clock
    return previous


def now() -> datetime:
    return clock.now()
