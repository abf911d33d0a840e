"""
Nearby-user discovery for the home screen.

Combines every saved `UserLocation` with the matching profiles and runs
`visibility.filter_nearby_profiles`. Free users search within 250 ft and
only with age/ethnicity brackets; subscribers get the full radius and
the premium filters. Each result exposes only the profile fields the
owner made visible to everyone.
"""

import logging
from typing import Any, Dict, List, Optional

from errors import BroadcastUnavailable
from geo import Coordinate, distance_m, format_distance, is_within_radius
from repo_locations import LocationRepo
from repo_users import ProfileRepo, UserRepo
from service_broadcasts import build_viewer
from service_users import clamp_search_radius
from visibility import filter_nearby_profiles, public_profile

logger = logging.getLogger(__name__)


class DiscoveryService:
    def __init__(self, users: UserRepo, profiles: ProfileRepo, locations: LocationRepo):
        self.users = users
        self.profiles = profiles
        self.locations = locations

    def nearby_profiles(self, user_id: str, location: Optional[Coordinate] = None) -> List[Dict[str, Any]]:
        user = self.users.get_user(user_id) or {}
        subscribed = bool(user.get("is_subscribed"))

        if location is None:
            rec = self.locations.get_location(user_id)
            if rec is None:
                raise BroadcastUnavailable("Current location unknown")
            location = Coordinate(rec["lat"], rec["lon"])

        profile = self.profiles.get_profile(user_id)
        radius = clamp_search_radius((profile or {}).get("search_radius_m"), subscribed)
        viewer = build_viewer(user_id, location, profile, radius)

        coords = {
            r["user_id"]: Coordinate(r["lat"], r["lon"])
            for r in self.locations.list_locations()
            if r["user_id"] != user_id
        }
        in_range = [uid for uid, c in coords.items() if is_within_radius(c, location, radius)]
        candidates = self.profiles.list_profiles(in_range)

        premium = ((profile or {}).get("preferences") or {}) if subscribed else None
        matches = filter_nearby_profiles(viewer, candidates, coords, premium)

        out = []
        for p in matches:
            dist = distance_m(location, coords[p["user_id"]])
            out.append({
                "user_id": p["user_id"],
                "name": p.get("name") or "Unknown",
                "distance_m": round(dist, 1),
                "distance_label": format_distance(dist),
                "profile": public_profile(p.get("fields") or {}, p.get("field_visibilities") or {}),
            })
        logger.debug("%d nearby profiles for %s within %.1fm", len(out), user_id, radius)
        return out
