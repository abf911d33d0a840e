from types import SimpleNamespace

import pytest

from fakes import (
    FakeBroadcastRepo,
    FakeLikeRepo,
    FakeLocationRepo,
    FakeMessageRepo,
    FakeProfileRepo,
    FakeUserRepo,
)
from region_guard import LocationThrottle
from service_broadcasts import BroadcastService
from service_discovery import DiscoveryService
from service_likes import LikeService
from service_locations import LocationService
from service_messages import MessageService
from service_users import UserService


@pytest.fixture
def world():
    """All services wired to in-memory repositories."""

    users_repo = FakeUserRepo()
    profiles = FakeProfileRepo()
    locations_repo = FakeLocationRepo()
    broadcasts_repo = FakeBroadcastRepo()
    likes_repo = FakeLikeRepo()
    messages_repo = FakeMessageRepo()

    locations = LocationService(locations_repo, LocationThrottle(50, 30), debounce_s=0.01)
    likes = LikeService(likes_repo, profiles)
    return SimpleNamespace(
        users_repo=users_repo,
        profiles=profiles,
        locations_repo=locations_repo,
        broadcasts_repo=broadcasts_repo,
        likes_repo=likes_repo,
        messages_repo=messages_repo,
        users=UserService(users_repo, profiles, locations_repo, broadcasts_repo, likes_repo, messages_repo),
        locations=locations,
        broadcasts=BroadcastService(broadcasts_repo, users_repo, profiles, locations),
        discovery=DiscoveryService(users_repo, profiles, locations_repo),
        likes=likes,
        messages=MessageService(messages_repo, likes),
    )
