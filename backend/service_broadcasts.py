"""
Service layer for broadcasts.

A broadcast is a one-hour, location-tagged "I'm here" pin. Free users
get one per week; the allowance comes back at the first Sunday 00:00 UTC
after their last broadcast. Subscribers are not limited.

Who sees a broadcast is decided by `visibility.filter_nearby_broadcasts`.
This service only assembles its inputs: the live broadcasts (queried
with `expires_at > now`), the viewer's brackets and radius, and a fresh
`RadiusCache` per request so broadcaster radii are looked up once each.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from errors import BroadcastUnavailable, PaywallRequired, RecordNotFound
from geo import Coordinate, distance_m, format_distance
from moderation import blocked_terms, find_blocked_term
from repo_broadcasts import BroadcastRepo
from repo_users import ProfileRepo, UserRepo
from service_locations import LocationService
from settings import settings
from visibility import BroadcastRecord, RadiusCache, Viewer, filter_nearby_broadcasts

logger = logging.getLogger(__name__)

SUNDAY = 6  # datetime.weekday()


def next_weekly_reset(after: datetime) -> datetime:
    """First Sunday 00:00 UTC strictly after `after`."""

    after = after.astimezone(timezone.utc)
    midnight = after.replace(hour=0, minute=0, second=0, microsecond=0)
    candidate = midnight + timedelta(days=(SUNDAY - after.weekday()) % 7)
    if candidate <= after:
        candidate += timedelta(days=7)
    return candidate


def build_viewer(user_id: str, location: Coordinate, profile: Optional[Dict[str, Any]], radius_m: float) -> Viewer:
    prefs = (profile or {}).get("preferences") or {}
    return Viewer(
        user_id=user_id,
        location=location,
        min_age=int(prefs.get("min_age", 18)),
        max_age=int(prefs.get("max_age", 99)),
        radius_m=radius_m,
        ethnicities=list(prefs.get("ethnicities") or []),
    )


def broadcast_to_dict(record: BroadcastRecord, viewer_location: Optional[Coordinate] = None) -> Dict[str, Any]:
    out = {
        "id": record.id,
        "user_id": record.owner_id,
        "lat": record.location.lat,
        "lon": record.location.lon,
        "message": record.message,
        "age": record.age,
        "ethnicity": record.ethnicity,
        "expires_at": record.expires_at.isoformat(),
    }
    if viewer_location is not None:
        dist = distance_m(viewer_location, record.location)
        out["distance_m"] = round(dist, 1)
        out["distance_label"] = format_distance(dist)
    return out


class BroadcastService:
    """Business rules for starting, stopping and finding broadcasts."""

    def __init__(
        self,
        repo: BroadcastRepo,
        users: UserRepo,
        profiles: ProfileRepo,
        locations: LocationService,
    ):
        self.repo = repo
        self.users = users
        self.profiles = profiles
        self.locations = locations

    def _require_user(self, user_id: str) -> Dict[str, Any]:
        user = self.users.get_user(user_id)
        if user is None:
            raise RecordNotFound("User", user_id)
        return user

    @staticmethod
    def _allowance(user: Dict[str, Any], now: datetime) -> tuple[Optional[int], datetime]:
        last = user.get("last_broadcast_at")
        next_reset = next_weekly_reset(last if last is not None else now)
        if user.get("is_subscribed"):
            left = None
        elif last is None:
            left = 1
        else:
            left = 1 if now >= next_reset else 0
        if last is not None and now >= next_reset:
            next_reset = next_weekly_reset(now)
        return left, next_reset

    def broadcast_status(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Remaining allowance, next reset and the active broadcast, if any.

        `broadcasts_left` is None for subscribers (unlimited).
        """

        now = now or datetime.now(timezone.utc)
        user = self._require_user(user_id)
        left, next_reset = self._allowance(user, now)

        active = self.repo.active_for_user(user_id, now)
        return {
            "is_subscribed": bool(user.get("is_subscribed")),
            "broadcasts_left": left,
            "next_reset": next_reset.isoformat(),
            "active_until": active.expires_at.isoformat() if active else None,
        }

    def start_broadcast(
        self,
        user_id: str,
        location: Coordinate,
        message: str = "",
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Publish a broadcast at `location` for one hour.

        A free user's weekly broadcast is claimed with a conditional update
        on `last_broadcast_at`, so concurrent starts cannot both spend it.

        Raises:
        - `PaywallRequired` when a free user has no broadcast left this week
        - `ValueError` when the message contains a blocked term
        - `RecordNotFound` when the user has no profile yet
        """

        now = now or datetime.now(timezone.utc)
        user = self._require_user(user_id)
        left, next_reset = self._allowance(user, now)
        if left == 0:
            raise PaywallRequired(
                f"No broadcasts left this week; next one at {next_reset.isoformat()}"
            )

        text = (message or "").strip()
        if find_blocked_term(text) is not None:
            raise ValueError("Broadcast message contains blocked language")
        text = text[: settings.broadcast_message_max_len]

        profile = self.profiles.get_profile(user_id)
        if profile is None:
            raise RecordNotFound("UserProfile", f"{user_id}_profile")

        previous = user.get("last_broadcast_at")
        if left is not None and not self.users.claim_broadcast(user_id, previous, now):
            raise PaywallRequired("This week's broadcast was just used by another request")

        expires_at = now + timedelta(seconds=settings.broadcast_duration_s)
        try:
            record = self.repo.insert_broadcast(
                user_id, location, text, profile.get("age"), profile.get("ethnicity"), expires_at
            )
        except Exception:
            if left is not None:
                self.users.set_last_broadcast_at(user_id, previous)
            raise
        if left is None:
            self.users.set_last_broadcast_at(user_id, now)
        logger.info("Broadcast %s started by %s until %s", record.id, user_id, expires_at.isoformat())
        return broadcast_to_dict(record)

    def stop_broadcast(self, user_id: str) -> int:
        deleted = self.repo.delete_for_user(user_id)
        logger.info("Stopped %d broadcast(s) for %s", deleted, user_id)
        return deleted

    def nearby_broadcasts(
        self,
        user_id: str,
        location: Optional[Coordinate] = None,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Live broadcasts the viewer is allowed to see, in query order.

        Without an explicit `location`, the viewer's last saved location
        is used; with neither, `BroadcastUnavailable` is raised.
        """

        now = now or datetime.now(timezone.utc)
        location = location or self.locations.get_location(user_id)
        if location is None:
            raise BroadcastUnavailable("Current location unknown")

        profile = self.profiles.get_profile(user_id)
        radius = (profile or {}).get("broadcast_radius_m") or settings.default_broadcast_radius_m
        viewer = build_viewer(user_id, location, profile, radius)

        cache = RadiusCache(self.profiles.get_broadcast_radius, settings.default_broadcast_radius_m)
        records = self.repo.fetch_active(now)
        visible = filter_nearby_broadcasts(viewer, records, cache, blocked_terms())
        logger.debug(
            "%d/%d broadcasts visible to %s (%d radius lookups)",
            len(visible), len(records), user_id, cache.fetch_count,
        )
        return [broadcast_to_dict(r, location) for r in visible]

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        deleted = self.repo.delete_expired(now)
        logger.info("Removed %d expired broadcast(s)", deleted)
        return deleted
