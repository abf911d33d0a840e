"""
Visibility rules for nearby broadcasts and nearby profiles.

Everything here is pure filtering over records that the repositories
already fetched. Nothing is persisted; output order is input order.

Broadcast policy, applied per record, in order:
1. drop if the message contains a blocked term
2. keep the viewer's own broadcasts unconditionally
3. require the broadcaster's age within the viewer's preferred range
4. if the viewer lists ethnicities, require membership
5. require distance <= the viewer's radius
6. require distance <= the broadcaster's own radius (`RadiusCache`)

The broadcaster radius lookup is the only I/O: `RadiusCache` calls the
injected `fetch` at most once per broadcaster and is safe to share
between threads.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from geo import Coordinate, distance_m
from moderation import contains_blocked_term

logger = logging.getLogger(__name__)

VISIBLE_TO_EVERYONE = "everyone"


@dataclass(frozen=True)
class BroadcastRecord:
    id: str
    owner_id: str
    location: Coordinate
    age: Optional[int]
    ethnicity: Optional[str]
    message: Optional[str]
    expires_at: datetime


@dataclass
class Viewer:
    user_id: str
    location: Coordinate
    min_age: int
    max_age: int
    radius_m: float
    ethnicities: List[str] = field(default_factory=list)

    def accepts_age(self, age: Optional[int]) -> bool:
        return age is not None and self.min_age <= age <= self.max_age

    def accepts_ethnicity(self, ethnicity: Optional[str]) -> bool:
        if not self.ethnicities:
            return True
        return ethnicity in self.ethnicities


class RadiusCache:
    """Broadcaster radius lookups, cached for the lifetime of the instance.

    `fetch(owner_id)` returns the radius the broadcaster configured, or
    None when they never set one; None (and fetch errors) resolve to
    `default_radius_m`. The lock is held across the fetch so two threads
    asking for the same owner never fetch twice.
    """

    def __init__(self, fetch: Callable[[str], Optional[float]], default_radius_m: float):
        self._fetch = fetch
        self.default_radius_m = default_radius_m
        self._radii: Dict[str, float] = {}
        self._lock = threading.Lock()
        self.fetch_count = 0

    def get(self, owner_id: str) -> float:
        with self._lock:
            if owner_id in self._radii:
                return self._radii[owner_id]
            self.fetch_count += 1
            try:
                radius = self._fetch(owner_id)
            except Exception:
                logger.exception("Radius lookup failed for %s, using default", owner_id)
                radius = None
            resolved = radius if radius is not None and radius > 0 else self.default_radius_m
            self._radii[owner_id] = resolved
            return resolved

    def __contains__(self, owner_id: str) -> bool:
        with self._lock:
            return owner_id in self._radii


def is_broadcast_visible(
    viewer: Viewer,
    record: BroadcastRecord,
    radius_cache: RadiusCache,
    blocked_terms: Iterable[str] | None = None,
) -> bool:
    if contains_blocked_term(record.message, blocked_terms):
        return False
    if record.owner_id == viewer.user_id:
        return True
    if not viewer.accepts_age(record.age):
        return False
    if not viewer.accepts_ethnicity(record.ethnicity):
        return False

    dist = distance_m(viewer.location, record.location)
    if dist > viewer.radius_m:
        return False
    # Checked last so filtered-out records never cost a lookup.
    return dist <= radius_cache.get(record.owner_id)


def filter_nearby_broadcasts(
    viewer: Viewer,
    records: Iterable[BroadcastRecord],
    radius_cache: RadiusCache,
    blocked_terms: Sequence[str] | None = None,
) -> List[BroadcastRecord]:
    return [r for r in records if is_broadcast_visible(viewer, r, radius_cache, blocked_terms)]


# --- nearby profiles -------------------------------------------------------

_MEMBERSHIP_FILTERS = (
    "religion",
    "political_view",
    "dating_intentions",
    "relationship_type",
    "exercise_habits",
    "interests",
)
_BOOLEAN_FILTERS = ("has_children", "smokes_weed", "uses_drugs", "drinks", "smokes")


def height_to_inches(height: Optional[str]) -> Optional[int]:
    """Parse `"5 ft 6 in"` into 66. Anything else is None."""

    if not height:
        return None
    parts = height.split()
    if len(parts) != 4:
        return None
    try:
        return int(parts[0]) * 12 + int(parts[2])
    except ValueError:
        return None


def passes_premium_filters(fields: Mapping, prefs: Mapping) -> bool:
    """Subscriber-only filters. A field the profile lacks never excludes."""

    inches = height_to_inches(fields.get("height"))
    if inches is not None:
        lo = prefs.get("min_height_in", 0)
        hi = prefs.get("max_height_in", 10_000)
        if inches < lo or inches > hi:
            return False

    for key in _MEMBERSHIP_FILTERS:
        wanted = prefs.get(key) or []
        value = fields.get(key)
        if wanted and value and value not in wanted:
            return False

    for key in _BOOLEAN_FILTERS:
        wanted = prefs.get(key)
        value = fields.get(key)
        if wanted is not None and value is not None and bool(value) != wanted:
            return False

    return True


def filter_nearby_profiles(
    viewer: Viewer,
    profiles: Iterable[Mapping],
    locations: Mapping[str, Coordinate],
    premium_prefs: Optional[Mapping] = None,
) -> List[Mapping]:
    """Profiles within `viewer.radius_m` that match the viewer's brackets.

    `profiles` are profile rows (`user_id`, `age`, `ethnicity`, `fields`);
    `locations` maps user ids to their last saved location. Premium
    filters apply only when `premium_prefs` is given.
    """

    out: List[Mapping] = []
    for p in profiles:
        uid = p["user_id"]
        if uid == viewer.user_id:
            continue
        loc = locations.get(uid)
        if loc is None or distance_m(viewer.location, loc) > viewer.radius_m:
            continue
        if premium_prefs is not None and not passes_premium_filters(p.get("fields") or {}, premium_prefs):
            continue
        age = p.get("age")
        if age is not None and not viewer.accepts_age(age):
            continue
        ethnicity = p.get("ethnicity")
        if viewer.ethnicities and ethnicity and ethnicity not in viewer.ethnicities:
            continue
        out.append(p)
    return out


def public_profile(fields: Mapping, visibilities: Mapping[str, str]) -> Dict:
    """Only the fields their owner made visible to everyone."""

    visible = {k for k, v in visibilities.items() if str(v).lower() == VISIBLE_TO_EVERYONE}
    return {k: v for k, v in fields.items() if k in visible}
