"""
Feedback-loop guards for map and location driven updates.

`RegionChangeGuard` decides which "region changed" events from a map
widget reach application state. Events caused by the application moving
the map itself arrive within `settling_window_s` of the programmatic set
and are dropped; everything else must move the center or span by more
than the epsilons to count.

`Debouncer` coalesces bursts of reload requests (one per location fix)
into a single call once the burst goes quiet.

`LocationThrottle` decides whether a new location fix is worth saving.

Time is injected (`clock`) so tests don't sleep.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from geo import Coordinate, distance_m
from settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Region:
    center_lat: float
    center_lon: float
    span_lat: float
    span_lon: float


class RegionChangeGuard:
    """Two conditions only: idle, or inside the settling window."""

    def __init__(
        self,
        settling_window_s: Optional[float] = None,
        center_epsilon: Optional[float] = None,
        span_epsilon: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settling_window_s = (
            settings.region_settling_window_s if settling_window_s is None else settling_window_s
        )
        self.center_epsilon = settings.region_center_epsilon if center_epsilon is None else center_epsilon
        self.span_epsilon = settings.region_span_epsilon if span_epsilon is None else span_epsilon
        self._clock = clock
        self._programmatic_at: Optional[float] = None
        self.region: Optional[Region] = None

    @property
    def settling(self) -> bool:
        return self._programmatic_at is not None

    def set_programmatically(self, region: Region) -> None:
        self._programmatic_at = self._clock()
        self.region = region

    def exceeds_thresholds(self, region: Region) -> bool:
        if self.region is None:
            return True
        cur = self.region
        return (
            abs(region.center_lat - cur.center_lat) > self.center_epsilon
            or abs(region.center_lon - cur.center_lon) > self.center_epsilon
            or abs(region.span_lat - cur.span_lat) > self.span_epsilon
            or abs(region.span_lon - cur.span_lon) > self.span_epsilon
        )

    def on_region_changed(self, region: Region) -> bool:
        """Return True when `region` should propagate to application state."""

        if self._programmatic_at is not None:
            if self._clock() - self._programmatic_at < self.settling_window_s:
                return False
            self._programmatic_at = None

        if not self.exceeds_thresholds(region):
            return False
        self.region = region
        return True


class Debouncer:
    """Run `callback` once, `delay_s` after the last `trigger()`."""

    def __init__(self, delay_s: float, callback: Callable[[], None]):
        self.delay_s = delay_s
        self._callback = callback
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay_s, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        try:
            self._callback()
        except Exception:
            logger.exception("Debounced callback failed")


class LocationThrottle:
    """Per-user save throttle for location fixes.

    The first fix always saves. Later fixes save only after moving more
    than `min_distance_m` or after `min_interval_s` since the last saved
    fix. `begin()` refuses a second save while one is in flight.

    A saved fix older than `min_interval_s` no longer throttles anything,
    so such entries are swept (at most once per interval) and only
    recently active users are kept in memory.
    """

    def __init__(self, min_distance_m: Optional[float] = None, min_interval_s: Optional[float] = None):
        self.min_distance_m = settings.location_min_distance_m if min_distance_m is None else min_distance_m
        self.min_interval_s = settings.location_min_interval_s if min_interval_s is None else min_interval_s
        self._last_saved: Dict[str, tuple[Coordinate, datetime]] = {}
        self._in_flight: set[str] = set()
        self._next_sweep: Optional[datetime] = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_saved)

    def __contains__(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._last_saved

    def should_save(self, user_id: str, coordinate: Coordinate, at: datetime) -> bool:
        with self._lock:
            self._evict_stale(at)
            last = self._last_saved.get(user_id)
        if last is None:
            return True
        last_coord, last_at = last
        moved = distance_m(coordinate, last_coord)
        elapsed = (at - last_at).total_seconds()
        return moved > self.min_distance_m or elapsed > self.min_interval_s

    def _evict_stale(self, now: datetime) -> None:
        # caller holds self._lock
        if self._next_sweep is not None and now < self._next_sweep:
            return
        interval = timedelta(seconds=self.min_interval_s)
        cutoff = now - interval
        stale = [
            uid for uid, (_, saved_at) in self._last_saved.items()
            if saved_at < cutoff and uid not in self._in_flight
        ]
        for uid in stale:
            del self._last_saved[uid]
        if stale:
            logger.debug("Evicted %d stale location throttle entries", len(stale))
        self._next_sweep = now + interval

    def begin(self, user_id: str) -> bool:
        with self._lock:
            if user_id in self._in_flight:
                return False
            self._in_flight.add(user_id)
            return True

    def end(self, user_id: str, saved: Optional[tuple[Coordinate, datetime]] = None) -> None:
        with self._lock:
            self._in_flight.discard(user_id)
            if saved is not None:
                self._last_saved[user_id] = saved

    def forget(self, user_id: str) -> None:
        with self._lock:
            self._last_saved.pop(user_id, None)
            self._in_flight.discard(user_id)
