"""
Service layer for the per-user `UserLocation` record.

Location fixes arrive far more often than they are worth saving, so each
fix goes through `LocationThrottle` first. A save that loses a write race
is merged onto the latest record and retried. Failures are logged and
reported as "not saved"; the next fix simply tries again.

Observers registered with `subscribe` are told when a user's location
settled: calls are debounced per user so a burst of fixes causes one
notification.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from conflict import save_with_conflict_resolution
from geo import Coordinate
from region_guard import Debouncer, LocationThrottle
from repo_locations import LocationRepo
from settings import settings

logger = logging.getLogger(__name__)


class LocationService:
    def __init__(
        self,
        repo: LocationRepo,
        throttle: Optional[LocationThrottle] = None,
        debounce_s: Optional[float] = None,
    ):
        self.repo = repo
        self.throttle = throttle or LocationThrottle()
        self.debounce_s = settings.location_reload_debounce_s if debounce_s is None else debounce_s
        self._observers: List[Callable[[str], None]] = []
        self._debouncers: Dict[str, Debouncer] = {}
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[str], None]) -> None:
        """Register `callback(user_id)` to run once a burst of saved fixes settles.

        Extension hook: the HTTP app registers none, clients poll
        `/broadcasts/nearby` instead. In-process consumers (cache warmers,
        push fan-out) subscribe here.
        """

        self._observers.append(callback)

    def get_location(self, user_id: str) -> Optional[Coordinate]:
        rec = self.repo.get_location(user_id)
        return Coordinate(rec["lat"], rec["lon"]) if rec else None

    def update_location(self, user_id: str, coordinate: Coordinate, at: Optional[datetime] = None) -> bool:
        """Save `coordinate` for `user_id` if the throttle allows it.

        Returns True only when a save actually happened.

        Raises:
        - `ValueError` when `at` has no timezone
        """

        if at is None:
            at = datetime.now(timezone.utc)
        elif at.tzinfo is None:
            raise ValueError("Timestamp must include timezone info (e.g., 2026-02-20T10:00:00Z)")
        # Throttle baselines are compared across calls, keep them all in UTC.
        at = at.astimezone(timezone.utc)
        if not self.throttle.should_save(user_id, coordinate, at):
            return False
        if not self.throttle.begin(user_id):
            logger.debug("Location save already in flight for %s", user_id)
            return False

        saved = None
        try:
            self._save(user_id, coordinate)
            saved = (coordinate, at)
            logger.info("Location updated for %s", user_id)
        except Exception:
            logger.exception("Error saving location for %s", user_id)
        finally:
            self.throttle.end(user_id, saved)

        if saved is not None:
            self._schedule_notify(user_id)
        return saved is not None

    def _save(self, user_id: str, coordinate: Coordinate) -> None:
        def merge(latest: Optional[dict]) -> dict:
            base = latest or {"user_id": user_id, "version": None}
            return {**base, "lat": coordinate.lat, "lon": coordinate.lon}

        save_with_conflict_resolution(
            merge(self.repo.get_location(user_id)),
            save=self.repo.save_location,
            fetch_latest=lambda: self.repo.get_location(user_id),
            merge=merge,
        )

    def _schedule_notify(self, user_id: str) -> None:
        if not self._observers:
            return
        with self._lock:
            debouncer = self._debouncers.get(user_id)
            if debouncer is None:
                debouncer = Debouncer(self.debounce_s, lambda: self._settled(user_id))
                self._debouncers[user_id] = debouncer
            debouncer.trigger()

    def _settled(self, user_id: str) -> None:
        with self._lock:
            debouncer = self._debouncers.get(user_id)
            # a trigger that raced in keeps the debouncer alive
            if debouncer is not None and not debouncer.pending:
                del self._debouncers[user_id]
        self._notify(user_id)

    def _notify(self, user_id: str) -> None:
        for callback in list(self._observers):
            try:
                callback(user_id)
            except Exception:
                logger.exception("Location observer failed for %s", user_id)

    def forget(self, user_id: str) -> None:
        self.throttle.forget(user_id)
        with self._lock:
            debouncer = self._debouncers.pop(user_id, None)
        if debouncer is not None:
            debouncer.cancel()
