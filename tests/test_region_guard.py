import threading
import time
from datetime import datetime, timedelta, timezone

from geo import Coordinate
from helpers import ORIGIN, north_of
from region_guard import Debouncer, LocationThrottle, Region, RegionChangeGuard
from settings import settings


class FakeClock:
    def __init__(self, t=100.0):
        self.t = t

    def __call__(self):
        return self.t

    def advance(self, seconds):
        self.t += seconds


HOME = Region(37.7749, -122.4194, 0.01, 0.01)
PANNED = Region(37.7800, -122.4194, 0.01, 0.01)


def _guard(clock):
    return RegionChangeGuard(settling_window_s=0.3, center_epsilon=0.0001, span_epsilon=0.0001, clock=clock)


def test_events_inside_settling_window_are_dropped():
    clock = FakeClock()
    guard = _guard(clock)
    guard.set_programmatically(HOME)

    for dt in (0.0, 0.1, 0.29):
        clock.t = 100.0 + dt
        assert not guard.on_region_changed(PANNED)
    assert guard.settling
    assert guard.region == HOME


def test_first_event_after_window_clears_and_propagates():
    clock = FakeClock()
    guard = _guard(clock)
    guard.set_programmatically(HOME)

    clock.advance(0.31)
    assert guard.on_region_changed(PANNED)
    assert not guard.settling
    assert guard.region == PANNED


def test_event_after_window_still_needs_to_exceed_epsilon():
    clock = FakeClock()
    guard = _guard(clock)
    guard.set_programmatically(HOME)

    clock.advance(1.0)
    nudged = Region(HOME.center_lat + 0.00005, HOME.center_lon, HOME.span_lat, HOME.span_lon)
    assert not guard.on_region_changed(nudged)
    # window is cleared even though the event did not propagate
    assert not guard.settling


def test_no_pending_set_evaluates_thresholds():
    clock = FakeClock()
    guard = _guard(clock)

    assert guard.on_region_changed(HOME)  # nothing known yet
    assert not guard.on_region_changed(HOME)
    zoomed = Region(HOME.center_lat, HOME.center_lon, 0.02, 0.02)
    assert guard.on_region_changed(zoomed)
    assert guard.region == zoomed


def test_span_change_alone_propagates():
    guard = _guard(FakeClock())
    guard.on_region_changed(HOME)
    assert guard.on_region_changed(Region(HOME.center_lat, HOME.center_lon, HOME.span_lat, 0.0102))


def test_new_programmatic_set_restarts_window():
    clock = FakeClock()
    guard = _guard(clock)
    guard.set_programmatically(HOME)
    clock.advance(0.25)
    guard.set_programmatically(PANNED)
    clock.advance(0.25)
    assert not guard.on_region_changed(HOME)


def test_debouncer_coalesces_bursts():
    fired = []
    done = threading.Event()

    def callback():
        fired.append(1)
        done.set()

    debouncer = Debouncer(0.05, callback)
    for _ in range(5):
        debouncer.trigger()
    assert debouncer.pending

    assert done.wait(2.0)
    time.sleep(0.1)
    assert fired == [1]
    assert not debouncer.pending


def test_debouncer_cancel():
    fired = []
    debouncer = Debouncer(0.05, lambda: fired.append(1))
    debouncer.trigger()
    debouncer.cancel()
    time.sleep(0.15)
    assert fired == []


def test_location_throttle():
    throttle = LocationThrottle(min_distance_m=50, min_interval_s=30)
    t0 = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

    assert throttle.should_save("u", ORIGIN, t0)
    assert throttle.begin("u")
    assert not throttle.begin("u")
    throttle.end("u", (ORIGIN, t0))

    assert not throttle.should_save("u", north_of(ORIGIN, 20), t0 + timedelta(seconds=10))
    assert throttle.should_save("u", north_of(ORIGIN, 60), t0 + timedelta(seconds=10))
    assert throttle.should_save("u", north_of(ORIGIN, 20), t0 + timedelta(seconds=31))
    assert throttle.should_save("other", Coordinate(0, 0), t0)


def test_failed_save_does_not_move_the_baseline():
    throttle = LocationThrottle(min_distance_m=50, min_interval_s=30)
    t0 = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    throttle.begin("u")
    throttle.end("u")
    assert throttle.should_save("u", ORIGIN, t0)


def test_guard_reads_window_and_epsilons_from_settings(monkeypatch):
    monkeypatch.setattr(settings, "region_settling_window_s", 5.0)
    monkeypatch.setattr(settings, "region_center_epsilon", 0.01)
    clock = FakeClock()
    guard = RegionChangeGuard(clock=clock)
    guard.set_programmatically(HOME)

    clock.advance(1.0)
    assert not guard.on_region_changed(PANNED)
    clock.advance(4.1)
    # 0.0051 degrees is inside the wider center epsilon
    assert not guard.on_region_changed(PANNED)
    assert guard.on_region_changed(Region(37.80, -122.4194, 0.01, 0.01))


def test_throttle_defaults_come_from_settings(monkeypatch):
    monkeypatch.setattr(settings, "location_min_distance_m", 500.0)
    throttle = LocationThrottle()
    t0 = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    throttle.end("u", (ORIGIN, t0))
    assert not throttle.should_save("u", north_of(ORIGIN, 100), t0 + timedelta(seconds=1))


def test_throttle_evicts_users_idle_longer_than_the_interval():
    throttle = LocationThrottle(min_distance_m=50, min_interval_s=30)
    t0 = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    for uid in ("a", "b", "c"):
        throttle.should_save(uid, ORIGIN, t0)
        throttle.end(uid, (ORIGIN, t0))
    assert len(throttle) == 3

    later = t0 + timedelta(seconds=31)
    assert throttle.should_save("d", ORIGIN, later)
    assert len(throttle) == 0
    throttle.end("d", (ORIGIN, later))

    # the next sweep keeps d, which still throttles
    assert throttle.should_save("e", ORIGIN, later + timedelta(seconds=30))
    assert "d" in throttle
    assert not throttle.should_save("d", north_of(ORIGIN, 10), later + timedelta(seconds=30))


def test_in_flight_users_are_not_evicted():
    throttle = LocationThrottle(min_distance_m=50, min_interval_s=30)
    t0 = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    throttle.end("a", (ORIGIN, t0))
    throttle.begin("a")
    throttle.should_save("b", ORIGIN, t0 + timedelta(minutes=5))
    assert "a" in throttle
