from fastapi import FastAPI, Header, HTTPException, Query
import logging
import random

from errors import BroadcastUnavailable, PaywallRequired, RecordNotFound
from geo import Coordinate
from logs import configure_logging
from models import (
    BroadcastIn,
    LikeIn,
    LocationIn,
    MessageIn,
    PreferencesIn,
    ProfileIn,
    SignInIn,
    SubscriptionIn,
)
from repo_broadcasts import BroadcastRepo
from repo_likes import LikeRepo
from repo_locations import LocationRepo
from repo_messages import MessageRepo
from repo_users import ProfileRepo, UserRepo
from service_broadcasts import BroadcastService
from service_discovery import DiscoveryService
from service_likes import LikeService
from service_locations import LocationService
from service_messages import MessageService
from service_users import UserService

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="WildSparks Backend")

# Instantiate the repos + services here so the routes remain thin and
# replaceable for testing (tests monkeypatch these module attributes).
user_repo = UserRepo()
profile_repo = ProfileRepo()
location_repo = LocationRepo()
broadcast_repo = BroadcastRepo()
like_repo = LikeRepo()
message_repo = MessageRepo()

users = UserService(user_repo, profile_repo, location_repo, broadcast_repo, like_repo, message_repo)
locations = LocationService(location_repo)
broadcasts = BroadcastService(broadcast_repo, user_repo, profile_repo, locations)
discovery = DiscoveryService(user_repo, profile_repo, location_repo)
likes = LikeService(like_repo, profile_repo)
messages = MessageService(message_repo, likes)


def _http_error(e: Exception, action: str) -> HTTPException:
    if isinstance(e, PaywallRequired):
        return HTTPException(status_code=402, detail=str(e))
    if isinstance(e, PermissionError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, RecordNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, BroadcastUnavailable):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    logger.exception("%s failed", action)
    return HTTPException(status_code=500, detail=f"{action} failed: {e}")


def _coordinate(lat: float | None, lon: float | None) -> Coordinate | None:
    if lat is None or lon is None:
        return None
    return Coordinate(lat, lon)


@app.get("/health")
def health():
    try:
        users.health_check()
        return {"ok": True}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"DB health check failed: {e}")


# --- users & profiles ------------------------------------------------------

@app.post("/auth/sign-in")
def sign_in(data: SignInIn):
    try:
        return users.sign_in(data)
    except Exception as e:
        raise _http_error(e, "Sign-in")


@app.get("/me/profile")
def my_profile(x_user_id: str = Header(...)):
    try:
        return users.get_profile(x_user_id)
    except Exception as e:
        raise _http_error(e, "Profile fetch")


@app.put("/me/profile")
def save_profile(data: ProfileIn, x_user_id: str = Header(...)):
    try:
        return users.save_profile(x_user_id, data)
    except Exception as e:
        raise _http_error(e, "Profile save")


@app.get("/users/{user_id}/profile")
def public_profile(user_id: str):
    try:
        return users.get_public_profile(user_id)
    except Exception as e:
        raise _http_error(e, "Profile fetch")


@app.get("/me/preferences")
def my_preferences(x_user_id: str = Header(...)):
    try:
        return users.get_preferences(x_user_id)
    except Exception as e:
        raise _http_error(e, "Preferences fetch")


@app.put("/me/preferences")
def save_preferences(data: PreferencesIn, x_user_id: str = Header(...)):
    try:
        users.save_preferences(x_user_id, data)
        return users.get_preferences(x_user_id)
    except Exception as e:
        raise _http_error(e, "Preferences save")


@app.put("/me/subscription")
def set_subscription(data: SubscriptionIn, x_user_id: str = Header(...)):
    try:
        return users.set_subscription(x_user_id, data.is_subscribed)
    except Exception as e:
        raise _http_error(e, "Subscription update")


@app.delete("/me")
def delete_account(x_user_id: str = Header(...)):
    try:
        locations.forget(x_user_id)
        return users.delete_account(x_user_id)
    except Exception as e:
        raise _http_error(e, "Account deletion")


@app.put("/me/location")
def update_location(data: LocationIn, x_user_id: str = Header(...)):
    try:
        saved = locations.update_location(x_user_id, data.coordinate(), data.at)
        return {"saved": saved}
    except Exception as e:
        raise _http_error(e, "Location update")


# --- discovery & broadcasts -----------------------------------------------

@app.get("/nearby/users")
def nearby_users(
    x_user_id: str = Header(...),
    lat: float | None = Query(None, ge=-90, le=90),
    lon: float | None = Query(None, ge=-180, le=180),
):
    try:
        return discovery.nearby_profiles(x_user_id, _coordinate(lat, lon))
    except Exception as e:
        raise _http_error(e, "Nearby users")


@app.get("/broadcasts/status")
def broadcast_status(x_user_id: str = Header(...)):
    try:
        return broadcasts.broadcast_status(x_user_id)
    except Exception as e:
        raise _http_error(e, "Broadcast status")


@app.post("/broadcasts")
def start_broadcast(data: BroadcastIn, x_user_id: str = Header(...)):
    try:
        return broadcasts.start_broadcast(x_user_id, data.coordinate(), data.message)
    except Exception as e:
        raise _http_error(e, "Broadcast")


@app.delete("/broadcasts")
def stop_broadcast(x_user_id: str = Header(...)):
    try:
        return {"deleted": broadcasts.stop_broadcast(x_user_id)}
    except Exception as e:
        raise _http_error(e, "Stop broadcast")


@app.get("/broadcasts/nearby")
def nearby_broadcasts(
    x_user_id: str = Header(...),
    lat: float | None = Query(None, ge=-90, le=90),
    lon: float | None = Query(None, ge=-180, le=180),
):
    try:
        return broadcasts.nearby_broadcasts(x_user_id, _coordinate(lat, lon))
    except Exception as e:
        raise _http_error(e, "Nearby broadcasts")


# --- likes, matches, messages ----------------------------------------------

@app.post("/likes")
def like(data: LikeIn, x_user_id: str = Header(...)):
    try:
        return likes.like(x_user_id, data.to_user)
    except Exception as e:
        raise _http_error(e, "Like")


@app.get("/likes/incoming")
def incoming_likes(x_user_id: str = Header(...)):
    try:
        return likes.incoming_likes(x_user_id)
    except Exception as e:
        raise _http_error(e, "Incoming likes")


@app.delete("/likes/{from_user}")
def reject_like(from_user: str, x_user_id: str = Header(...)):
    try:
        return likes.reject_like(x_user_id, from_user)
    except Exception as e:
        raise _http_error(e, "Reject like")


@app.get("/matches")
def matches(x_user_id: str = Header(...)):
    try:
        return likes.matches(x_user_id)
    except Exception as e:
        raise _http_error(e, "Matches")


@app.get("/messages/{other_user}")
def list_messages(other_user: str, x_user_id: str = Header(...), limit: int = 200):
    try:
        return messages.list_messages(x_user_id, other_user, limit)
    except Exception as e:
        raise _http_error(e, "Messages")


@app.post("/messages")
def send_message(data: MessageIn, x_user_id: str = Header(...)):
    try:
        return messages.send_message(x_user_id, data.to_user, data.text)
    except Exception as e:
        raise _http_error(e, "Send message")


@app.post("/seed")
def seed(
    x_user_id: str = Header(...),
    lat: float = 37.7749,
    lon: float = -122.4194,
):
    """Create a simulated match partner broadcasting next to the caller."""

    partner = "simUser2"
    here = Coordinate(lat, lon)
    # ~20-40 m away, well inside the default radius
    nearby = Coordinate(lat + random.uniform(0.0002, 0.0003), lon + random.uniform(-0.0001, 0.0001))

    # NOTE: call the services, NOT the raw repos
    try:
        me = users.sign_in(SignInIn(user_id=x_user_id))
        users.sign_in(SignInIn(user_id=partner, full_name="Taylor (Match)"))
        # subscribed so repeated seeding is never paywalled
        users.set_subscription(partner, True)
        if not me["has_profile"]:
            users.save_profile(x_user_id, ProfileIn(name="You", age=28))
        users.save_profile(
            partner,
            ProfileIn(
                name="Taylor (Match)",
                age=29,
                field_visibilities={"name": "everyone", "age": "everyone"},
            ),
        )
        locations.update_location(x_user_id, here)
        locations.update_location(partner, nearby)

        likes.like(partner, x_user_id)
        result = likes.like(x_user_id, partner)

        broadcasts.stop_broadcast(partner)
        broadcast = broadcasts.start_broadcast(partner, nearby, "Coffee House")
        return {"partner": partner, "match": result["match"], "broadcast": broadcast}
    except Exception as e:
        raise _http_error(e, "Seed")
