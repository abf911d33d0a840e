"""
Service / facade layer for users, profiles and preferences.

This module implements business rules before any DB interaction and
calls the repositories for persistence. Profile and preference writes
go through `save_with_conflict_resolution` so a concurrent writer only
costs a re-fetch and merge.

Key responsibilities:
- sign-in bookkeeping (User record, "has a profile yet?" routing hint)
- profile saves that never clobber preferences, and vice versa
- clamping radii to the ranges a user's subscription allows
- dropping premium filters when a subscription ends
- account deletion across every record type the user owns
"""

import logging
from typing import Any, Dict, Optional

from conflict import save_with_conflict_resolution
from errors import RecordNotFound
from geo import clamp
from models import PreferencesIn, ProfileIn, SignInIn
from repo_broadcasts import BroadcastRepo
from repo_likes import LikeRepo
from repo_locations import LocationRepo
from repo_messages import MessageRepo
from repo_users import ProfileRepo, UserRepo
from settings import settings
from visibility import public_profile

logger = logging.getLogger(__name__)

PREMIUM_KEYS = (
    "min_height_in",
    "max_height_in",
    "religion",
    "political_view",
    "dating_intentions",
    "relationship_type",
    "exercise_habits",
    "interests",
    "has_children",
    "smokes_weed",
    "uses_drugs",
    "drinks",
    "smokes",
)


def default_preferences() -> Dict[str, Any]:
    return PreferencesIn().model_dump(exclude={"broadcast_radius_m", "search_radius_m"})


def search_radius_bounds(is_subscribed: bool) -> tuple[float, float]:
    hi = settings.max_search_radius_subscribed_m if is_subscribed else settings.max_search_radius_free_m
    return settings.min_search_radius_m, hi


def clamp_search_radius(radius_m: Optional[float], is_subscribed: bool) -> float:
    lo, hi = search_radius_bounds(is_subscribed)
    return clamp(radius_m if radius_m is not None else lo, lo, hi)


def clamp_broadcast_radius(radius_m: float) -> float:
    return clamp(radius_m, settings.min_broadcast_radius_m, settings.max_broadcast_radius_m)


class UserService:
    """Business rules for the User and UserProfile records.

    Example usage:
        svc = UserService(UserRepo(), ProfileRepo())
        svc.sign_in(SignInIn(user_id="001234.abcd"))
    """

    def __init__(
        self,
        users: UserRepo,
        profiles: ProfileRepo,
        locations: Optional[LocationRepo] = None,
        broadcasts: Optional[BroadcastRepo] = None,
        likes: Optional[LikeRepo] = None,
        messages: Optional[MessageRepo] = None,
    ):
        self.users = users
        self.profiles = profiles
        self.locations = locations
        self.broadcasts = broadcasts
        self.likes = likes
        self.messages = messages

    def sign_in(self, data: SignInIn) -> Dict[str, Any]:
        """Create/refresh the User record.

        `has_profile` tells the client whether to continue to onboarding
        (False) or straight to home (True).
        """

        full_name = (data.full_name or "").strip() or None
        email = (data.email or "").strip() or None
        user = self.users.upsert_user(data.user_id, full_name, email)
        has_profile = self.profiles.get_profile(data.user_id) is not None
        logger.info("User %s signed in (has_profile=%s)", data.user_id, has_profile)
        return {
            "user_id": user["user_id"],
            "is_subscribed": bool(user.get("is_subscribed")),
            "has_profile": has_profile,
        }

    def require_user(self, user_id: str) -> Dict[str, Any]:
        user = self.users.get_user(user_id)
        if user is None:
            raise RecordNotFound("User", user_id)
        return user

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        profile = self.profiles.get_profile(user_id)
        if profile is None:
            raise RecordNotFound("UserProfile", f"{user_id}_profile")
        return profile

    def get_public_profile(self, user_id: str) -> Dict[str, Any]:
        profile = self.get_profile(user_id)
        fields = dict(profile.get("fields") or {})
        return {
            "user_id": user_id,
            "fields": public_profile(fields, profile.get("field_visibilities") or {}),
        }

    def save_profile(self, user_id: str, data: ProfileIn) -> Dict[str, Any]:
        """Write the editable profile fields, keeping stored preferences."""

        self.require_user(user_id)
        fields = data.model_dump(exclude={"field_visibilities"})
        changes = {
            "name": data.name,
            "age": data.age,
            "ethnicity": data.ethnicity or None,
            "fields": fields,
            "field_visibilities": dict(data.field_visibilities),
        }

        def merge(latest: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            base = latest or self._new_profile(user_id)
            return {**base, **changes}

        saved = save_with_conflict_resolution(
            merge(self.profiles.get_profile(user_id)),
            save=self.profiles.save_profile,
            fetch_latest=lambda: self.profiles.get_profile(user_id),
            merge=merge,
        )
        logger.info("Profile saved for %s (version %s)", user_id, saved.get("version"))
        return saved

    def get_preferences(self, user_id: str) -> Dict[str, Any]:
        profile = self.get_profile(user_id)
        prefs = {**default_preferences(), **(profile.get("preferences") or {})}
        prefs["broadcast_radius_m"] = profile.get("broadcast_radius_m") or settings.default_broadcast_radius_m
        prefs["search_radius_m"] = profile.get("search_radius_m") or settings.min_search_radius_m
        return prefs

    def save_preferences(self, user_id: str, data: PreferencesIn) -> Dict[str, Any]:
        """Store bracket preferences on the profile record.

        Premium filters are stored as given even for free users; they are
        only applied while subscribed. Radii are clamped to what the
        user's plan allows.
        """

        user = self.require_user(user_id)
        subscribed = bool(user.get("is_subscribed"))
        prefs = data.model_dump(exclude={"broadcast_radius_m", "search_radius_m"})

        def merge(latest: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            if latest is None:
                raise RecordNotFound("UserProfile", f"{user_id}_profile")
            merged = {**latest, "preferences": prefs}
            if data.broadcast_radius_m is not None:
                merged["broadcast_radius_m"] = clamp_broadcast_radius(data.broadcast_radius_m)
            if data.search_radius_m is not None:
                merged["search_radius_m"] = clamp_search_radius(data.search_radius_m, subscribed)
            return merged

        saved = save_with_conflict_resolution(
            merge(self.profiles.get_profile(user_id)),
            save=self.profiles.save_profile,
            fetch_latest=lambda: self.profiles.get_profile(user_id),
            merge=merge,
        )
        logger.info("Bracket preferences saved for %s", user_id)
        return saved

    def set_subscription(self, user_id: str, is_subscribed: bool) -> Dict[str, Any]:
        """Record subscriber state; losing it resets premium filters."""

        user = self.require_user(user_id)
        was_subscribed = bool(user.get("is_subscribed"))
        self.users.set_subscription(user_id, is_subscribed)

        if was_subscribed and not is_subscribed:
            profile = self.profiles.get_profile(user_id)
            if profile is not None:
                defaults = default_preferences()

                def merge(latest: Dict[str, Any]) -> Dict[str, Any]:
                    prefs = dict(latest.get("preferences") or {})
                    for key in PREMIUM_KEYS:
                        prefs[key] = defaults[key]
                    return {**latest, "preferences": prefs, "search_radius_m": settings.min_search_radius_m}

                save_with_conflict_resolution(
                    merge(profile),
                    save=self.profiles.save_profile,
                    fetch_latest=lambda: self.profiles.get_profile(user_id),
                    merge=merge,
                )
                logger.info("Premium filters reset for %s", user_id)

        return {"user_id": user_id, "is_subscribed": is_subscribed}

    def delete_account(self, user_id: str) -> Dict[str, int]:
        """Delete the user and everything they own. Missing parts are fine."""

        removed = {
            "user": int(self.users.delete_user(user_id)),
            "profile": int(self.profiles.delete_profile(user_id)),
        }
        if self.locations is not None:
            removed["location"] = int(self.locations.delete_location(user_id))
        if self.broadcasts is not None:
            removed["broadcasts"] = self.broadcasts.delete_for_user(user_id)
        if self.likes is not None:
            removed["likes"] = self.likes.delete_for_user(user_id)
        if self.messages is not None:
            removed["messages"] = self.messages.delete_for_user(user_id)
        logger.info("Deleted account %s: %s", user_id, removed)
        return removed

    def health_check(self) -> None:
        self.users.ping()

    @staticmethod
    def _new_profile(user_id: str) -> Dict[str, Any]:
        return {
            "user_id": user_id,
            "name": "",
            "age": None,
            "ethnicity": None,
            "fields": {},
            "field_visibilities": {},
            "preferences": default_preferences(),
            "broadcast_radius_m": None,
            "search_radius_m": None,
            "version": None,
        }
