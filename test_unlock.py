from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from unlock import (
    UnlockWatcher, describe_countdown, is_unlocked, poll_interval, seconds_until_unlock,
)

NOW = datetime(2030, 1, 1, 12, 0, 0)


def capsule(id, unlock_date):
    return SimpleNamespace(id=id, unlock_date=unlock_date)


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now += timedelta(**delta)


# ----------------------------
# Derived state
# ----------------------------
def test_unlock_boundary_is_inclusive():
    assert is_unlocked(NOW, NOW)
    assert not is_unlocked(NOW + timedelta(seconds=1), NOW)


def test_aware_and_naive_dates_compare_in_utc():
    aware = datetime(2030, 1, 1, 13, 0, 0, tzinfo=timezone(timedelta(hours=1)))
    assert is_unlocked(aware, NOW)


def test_seconds_until_unlock_never_negative():
    assert seconds_until_unlock(NOW - timedelta(days=1), NOW) == 0
    assert seconds_until_unlock(NOW + timedelta(minutes=2), NOW) == 120


def test_poll_interval():
    assert poll_interval(NOW + timedelta(hours=1), NOW) == 30
    assert poll_interval(NOW + timedelta(minutes=4), NOW) == 5
    assert poll_interval(NOW + timedelta(minutes=5), NOW) == 30
    assert poll_interval(NOW - timedelta(minutes=1), NOW) == 30


def test_describe_countdown():
    assert describe_countdown(NOW - timedelta(seconds=1), NOW) is None
    assert describe_countdown(NOW + timedelta(days=400), NOW) == "1 year, 1 month"
    assert describe_countdown(NOW + timedelta(days=2, hours=1), NOW) == "2 days, 1 hour"
    assert describe_countdown(NOW + timedelta(minutes=3, seconds=5), NOW) == "3 minutes, 5 seconds"
    assert describe_countdown(NOW + timedelta(seconds=1), NOW) == "1 second"


# ----------------------------
# Watcher
# ----------------------------
def test_watcher_announces_transition_once():
    clock = FakeClock(NOW)
    capsules = [capsule("a", NOW + timedelta(minutes=1))]
    announced = []
    watcher = UnlockWatcher(lambda: capsules, announced.append, clock=clock)

    assert watcher.tick() == []
    assert watcher.next_delay() == 5

    clock.advance(minutes=2)
    assert [c.id for c in watcher.tick()] == ["a"]
    assert watcher.tick() == []
    assert [c.id for c in announced] == ["a"]
    assert watcher.next_delay() == 30


def test_watcher_ignores_capsules_already_unlocked_on_first_sight():
    announced = []
    watcher = UnlockWatcher(lambda: [capsule("old", NOW - timedelta(days=1))], announced.append, clock=lambda: NOW)
    watcher.tick()
    watcher.tick()
    assert announced == []


def test_watcher_survives_failing_announcer():
    clock = FakeClock(NOW)
    capsules = [capsule("a", NOW + timedelta(seconds=10)), capsule("b", NOW + timedelta(seconds=10))]

    def announce(c):
        if c.id == "a":
            raise RuntimeError("toast failed")

    watcher = UnlockWatcher(lambda: capsules, announce, clock=clock)
    watcher.tick()
    clock.advance(seconds=30)
    assert [c.id for c in watcher.tick()] == ["a", "b"]


def test_separate_watchers_each_announce():
    clock = FakeClock(NOW)
    capsules = [capsule("a", NOW + timedelta(minutes=1))]
    first, second = [], []
    watchers = [UnlockWatcher(lambda: capsules, sink.append, clock=clock) for sink in (first, second)]
    for w in watchers:
        w.tick()
    clock.advance(minutes=1)
    for w in watchers:
        w.tick()
    assert len(first) == 1 and len(second) == 1


def test_run_sleeps_between_ticks():
    clock = FakeClock(NOW)
    sleeps = []

    def sleep(seconds):
        sleeps.append(seconds)
        clock.advance(seconds=seconds)

    announced = []
    watcher = UnlockWatcher(
        lambda: [capsule("a", NOW + timedelta(seconds=12))], announced.append, clock=clock, sleep=sleep,
    )
    watcher.run(max_ticks=4)
    assert sleeps == [5, 5, 5]
    assert len(announced) == 1
