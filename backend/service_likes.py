"""
Service layer for likes, rejections and matches.

A match is simply two likes in opposite directions; nothing else is
stored for it. Rejecting an incoming like deletes it and blocks the
liker from liking again for `settings.rejected_like_days`.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from errors import RecordNotFound
from repo_likes import LikeRepo
from repo_users import ProfileRepo
from settings import settings

logger = logging.getLogger(__name__)


class LikeService:
    def __init__(self, repo: LikeRepo, profiles: ProfileRepo):
        self.repo = repo
        self.profiles = profiles

    def like(self, from_user: str, to_user: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Like `to_user`. Repeating a like is a no-op.

        Raises:
        - `ValueError` for self-likes
        - `PermissionError` while `to_user` has an active rejection for us
        """

        now = now or datetime.now(timezone.utc)
        if from_user == to_user:
            raise ValueError("Cannot like yourself")
        if self.repo.is_blocked(to_user, from_user, now):
            raise PermissionError("This user declined your like recently")

        created = self.repo.insert_like(from_user, to_user)
        matched = self.is_match(from_user, to_user)
        if created:
            logger.info("%s liked %s", from_user, to_user)
        if matched:
            logger.info("Mutual match between %s and %s", from_user, to_user)
        return {"liked": True, "created": created, "match": matched}

    def is_match(self, a: str, b: str) -> bool:
        return b in self.repo.likes_from(a) and a in self.repo.likes_from(b)

    def incoming_likes(self, user_id: str) -> List[Dict[str, Any]]:
        """Likes waiting on `user_id`: liked them, not yet liked back."""

        pending = self.repo.likes_to(user_id) - self.repo.likes_from(user_id)
        return self._previews(pending)

    def reject_like(self, user_id: str, from_user: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        if not self.repo.delete_like(from_user, user_id):
            raise RecordNotFound("Like", f"{from_user}->{user_id}")

        expires_at = now + timedelta(days=settings.rejected_like_days)
        self.repo.insert_rejection(user_id, from_user, expires_at)
        logger.info("Blocked %s from re-liking %s until %s", from_user, user_id, expires_at.isoformat())
        return {"blocked_user": from_user, "expires_at": expires_at.isoformat()}

    def matches(self, user_id: str) -> List[Dict[str, Any]]:
        mutual = self.repo.likes_from(user_id) & self.repo.likes_to(user_id)
        return sorted(self._previews(mutual), key=lambda m: (m["name"], m["user_id"]))

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        deleted = self.repo.delete_expired_rejections(now)
        logger.info("Removed %d expired rejection(s)", deleted)
        return deleted

    def _previews(self, user_ids) -> List[Dict[str, Any]]:
        ids = sorted(user_ids)
        names = {p["user_id"]: p.get("name") for p in self.profiles.list_profiles(ids)}
        return [{"user_id": uid, "name": names.get(uid) or "Unknown"} for uid in ids]
