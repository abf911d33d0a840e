"""
Predicate-scanned cleanup of expired records.

Deletes broadcasts whose `expires_at` passed and rejected-like blocks
that ran out. Safe to run from cron at any interval; visibility never
depends on it because every fetch re-checks `expires_at`.

Usage:
    python -m scripts.cleanup_expired
"""

from datetime import datetime, timezone

from logs import configure_logging
from repo_broadcasts import BroadcastRepo
from repo_likes import LikeRepo
from repo_locations import LocationRepo
from repo_users import ProfileRepo, UserRepo
from service_broadcasts import BroadcastService
from service_likes import LikeService
from service_locations import LocationService


def main() -> None:
    configure_logging()
    now = datetime.now(timezone.utc)
    profiles = ProfileRepo()
    broadcasts = BroadcastService(BroadcastRepo(), UserRepo(), profiles, LocationService(LocationRepo()))
    likes = LikeService(LikeRepo(), profiles)

    removed_broadcasts = broadcasts.cleanup_expired(now)
    removed_rejections = likes.cleanup_expired(now)
    print(f"Removed {removed_broadcasts} broadcasts, {removed_rejections} rejected likes")


if __name__ == "__main__":
    main()
