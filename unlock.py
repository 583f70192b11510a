"""
Time-based unlock state.

A capsule counts as unlocked once ``unlock_date <= now``. Nothing on the server
reacts to that moment; clients reconcile by polling, every 30 seconds by
default and every 5 seconds while an unlock is less than 5 minutes away.
``UnlockWatcher`` is that loop: one instance per page session, announcing each
capsule at most once and only when it saw the capsule locked first.
"""
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from utils import as_utc_naive, utcnow

logger = logging.getLogger(__name__)

DEFAULT_POLL_SECONDS = 30
NEAR_UNLOCK_POLL_SECONDS = 5
NEAR_UNLOCK_WINDOW = timedelta(minutes=5)


def is_unlocked(unlock_date: datetime, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return as_utc_naive(unlock_date) <= as_utc_naive(now)


def seconds_until_unlock(unlock_date: datetime, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    remaining = (as_utc_naive(unlock_date) - as_utc_naive(now)).total_seconds()
    return max(0, int(remaining))


def is_near_unlock(unlock_date: datetime, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    remaining = as_utc_naive(unlock_date) - as_utc_naive(now)
    return timedelta(0) < remaining < NEAR_UNLOCK_WINDOW


def poll_interval(unlock_date: datetime, now: Optional[datetime] = None) -> int:
    return NEAR_UNLOCK_POLL_SECONDS if is_near_unlock(unlock_date, now) else DEFAULT_POLL_SECONDS


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count != 1 else ''}"


def describe_countdown(unlock_date: datetime, now: Optional[datetime] = None) -> Optional[str]:
    """Human readable time left, None once the capsule is unlocked."""
    if is_unlocked(unlock_date, now):
        return None
    total = seconds_until_unlock(unlock_date, now)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    years, days_in_year = divmod(days, 365)
    months = days_in_year // 30
    if years > 0:
        return f"{_plural(years, 'year')}, {_plural(months, 'month')}"
    if months > 0:
        return f"{_plural(months, 'month')}, {_plural(days_in_year % 30, 'day')}"
    if days > 0:
        return f"{_plural(days, 'day')}, {_plural(hours, 'hour')}"
    if hours > 0:
        return f"{_plural(hours, 'hour')}, {_plural(minutes, 'minute')}"
    if minutes > 0:
        return f"{_plural(minutes, 'minute')}, {_plural(seconds, 'second')}"
    return _plural(seconds, "second")


def unlock_status(capsule, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    return {
        "capsule_id": capsule.id,
        "unlock_date": capsule.unlock_date,
        "is_unlocked": is_unlocked(capsule.unlock_date, now),
        "seconds_until_unlock": seconds_until_unlock(capsule.unlock_date, now),
        "countdown": describe_countdown(capsule.unlock_date, now),
        "poll_interval": poll_interval(capsule.unlock_date, now),
    }


class UnlockWatcher:
    """
    Polls a capsule source and announces lock -> unlock transitions.

    ``fetch`` returns an iterable of objects with ``id`` and ``unlock_date``
    (ORM rows, or anything shaped like them). ``announce`` is called once per
    capsule that this watcher observed locked and later found unlocked.
    """

    def __init__(
        self,
        fetch: Callable[[], Iterable],
        announce: Callable[[object], None],
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.fetch = fetch
        self.announce = announce
        self.clock = clock
        self.sleep = sleep
        self.seen_locked = set()
        self.announced = set()
        self._last = []

    def tick(self) -> list:
        """One reconciliation pass; returns the capsules announced in it."""
        now = self.clock()
        self._last = list(self.fetch())
        announced = []
        for capsule in self._last:
            if not is_unlocked(capsule.unlock_date, now):
                self.seen_locked.add(capsule.id)
                continue
            if capsule.id in self.seen_locked and capsule.id not in self.announced:
                self.announced.add(capsule.id)
                announced.append(capsule)
                try:
                    self.announce(capsule)
                except Exception:
                    logger.exception("Unlock announcement failed for capsule %s", capsule.id)
        return announced

    def next_delay(self) -> int:
        now = self.clock()
        delays = [
            poll_interval(c.unlock_date, now)
            for c in self._last
            if not is_unlocked(c.unlock_date, now)
        ]
        return min(delays, default=DEFAULT_POLL_SECONDS)

    def run(self, max_ticks: Optional[int] = None):
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            self.tick()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            self.sleep(self.next_delay())
