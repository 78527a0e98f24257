from __future__ import annotations

import datetime as dt
from types import SimpleNamespace
from typing import Optional

from island_tracker.auth.principal import Principal
from island_tracker.domain.clock import FixedClock
from island_tracker.services.challenge_manager import ChallengeManager
from island_tracker.services.challenge_store import InMemoryChallengeStore
from island_tracker.services.notifications import NotificationEmitter
from island_tracker.services.user_settings import StaticTimezones

UTC = dt.timezone.utc
T0 = dt.datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def day_at(n: int, hours: float = 0) -> dt.datetime:
    """Scheduled instant of day `n` of a challenge started at T0, shifted by `hours`."""
    return T0 + dt.timedelta(days=n - 1, hours=hours)


class SequentialIds:
    def __init__(self, prefix: str = "id"):
        self.prefix = prefix
        self.n = 0

    def __call__(self) -> str:
        self.n += 1
        return f"{self.prefix}{self.n:04d}"


def make_env(
    user_id: Optional[str] = "user-a",
    *,
    store: Optional[InMemoryChallengeStore] = None,
    clock: Optional[FixedClock] = None,
    notifier: Optional[NotificationEmitter] = None,
    timezone: str = "UTC",
    fail_on_missed_makeup: bool = True,
):
    store = store if store is not None else InMemoryChallengeStore()
    clock = clock or FixedClock(T0)
    notifier = notifier or NotificationEmitter(clock=clock)
    manager = ChallengeManager(
        Principal(user_id),
        store,
        clock=clock,
        notifier=notifier,
        timezones=StaticTimezones({user_id: timezone} if user_id else {}),
        fail_on_missed_makeup=fail_on_missed_makeup,
        id_factory=SequentialIds(f"{user_id}-"),
    )
    return SimpleNamespace(manager=manager, store=store, clock=clock, notifier=notifier)
