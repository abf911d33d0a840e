import threading
from datetime import datetime, timedelta, timezone

from helpers import MILE, ORIGIN, north_of
from visibility import (
    BroadcastRecord,
    RadiusCache,
    Viewer,
    filter_nearby_broadcasts,
    filter_nearby_profiles,
    height_to_inches,
    is_broadcast_visible,
    public_profile,
)

EXPIRES = datetime(2030, 1, 1, tzinfo=timezone.utc)


def _viewer(radius_m=10 * MILE, min_age=25, max_age=35, ethnicities=None):
    return Viewer("viewer", ORIGIN, min_age, max_age, radius_m, ethnicities or [])


def _broadcast(owner="other", meters=100.0, age=30, ethnicity="Asian", message="Coffee House", id="b1"):
    return BroadcastRecord(id, owner, north_of(ORIGIN, meters), age, ethnicity, message, EXPIRES)


def _cache(radii=None, default=5 * MILE):
    radii = radii or {}
    return RadiusCache(lambda owner: radii.get(owner), default)


def test_broadcaster_radius_smaller_than_distance_excludes():
    viewer = _viewer(radius_m=10 * MILE)
    rec = _broadcast(meters=7 * MILE)
    cache = _cache({"other": 5 * MILE})

    assert not is_broadcast_visible(viewer, rec, cache)


def test_viewer_radius_smaller_than_distance_excludes():
    viewer = _viewer(radius_m=1 * MILE)
    rec = _broadcast(meters=2 * MILE)
    assert not is_broadcast_visible(viewer, rec, _cache({"other": 50 * MILE}))


def test_within_both_radii_is_visible():
    viewer = _viewer(radius_m=10 * MILE)
    rec = _broadcast(meters=4 * MILE)
    assert is_broadcast_visible(viewer, rec, _cache({"other": 5 * MILE}))


def test_age_outside_range_excluded_regardless_of_distance():
    viewer = _viewer(min_age=25, max_age=35)
    for age in (18, 24, 36, 60, None):
        rec = _broadcast(meters=1.0, age=age)
        assert not is_broadcast_visible(viewer, rec, _cache({"other": 50 * MILE}))


def test_age_range_is_inclusive():
    viewer = _viewer(min_age=25, max_age=35)
    assert is_broadcast_visible(viewer, _broadcast(age=25), _cache())
    assert is_broadcast_visible(viewer, _broadcast(age=35), _cache())


def test_ethnicity_membership_only_when_listed():
    rec = _broadcast(ethnicity="White")
    assert is_broadcast_visible(_viewer(ethnicities=[]), rec, _cache())
    assert not is_broadcast_visible(_viewer(ethnicities=["Asian", "Black"]), rec, _cache())
    assert is_broadcast_visible(_viewer(ethnicities=["White"]), rec, _cache())


def test_own_broadcast_always_visible():
    viewer = _viewer(radius_m=10, min_age=40, max_age=41, ethnicities=["Other"])
    rec = _broadcast(owner="viewer", meters=30 * MILE, age=20, ethnicity="Asian")
    assert is_broadcast_visible(viewer, rec, _cache({"viewer": 1.0}))


def test_blocked_word_excluded_even_when_everything_else_passes():
    viewer = _viewer()
    assert not is_broadcast_visible(viewer, _broadcast(message="hit me up on OnlyFans"), _cache())
    # applies before the own-broadcast rule
    assert not is_broadcast_visible(viewer, _broadcast(owner="viewer", message="SHIT"), _cache())


def test_custom_blocked_terms():
    viewer = _viewer()
    rec = _broadcast(message="Meet at Pizza Place")
    assert not is_broadcast_visible(viewer, rec, _cache(), blocked_terms=["pizza"])
    assert is_broadcast_visible(viewer, rec, _cache(), blocked_terms=["tacos"])


def test_filter_keeps_input_order():
    viewer = _viewer()
    records = [
        _broadcast(id="1", owner="a", meters=300),
        _broadcast(id="2", owner="b", meters=100, age=80),
        _broadcast(id="3", owner="c", meters=200),
        _broadcast(id="4", owner="viewer", meters=50),
    ]
    visible = filter_nearby_broadcasts(viewer, records, _cache())
    assert [r.id for r in visible] == ["1", "3", "4"]


def test_radius_cache_fetches_each_owner_once():
    calls = []

    def fetch(owner):
        calls.append(owner)
        return 2 * MILE

    cache = RadiusCache(fetch, 160.0)
    viewer = _viewer()
    records = [_broadcast(id=str(i), owner="a" if i % 2 else "b") for i in range(10)]
    filter_nearby_broadcasts(viewer, records, cache)

    assert sorted(calls) == ["a", "b"]
    assert cache.fetch_count == 2


def test_radius_cache_defaults_when_unset_or_failing():
    def fetch(owner):
        if owner == "broken":
            raise RuntimeError("boom")
        return None

    cache = RadiusCache(fetch, 160.0)
    assert cache.get("unset") == 160.0
    assert cache.get("broken") == 160.0
    assert "unset" in cache


def test_default_radius_applies_to_broadcasters_without_one():
    viewer = _viewer(radius_m=10 * MILE)
    cache = RadiusCache(lambda owner: None, 160.0)
    assert is_broadcast_visible(viewer, _broadcast(meters=150), cache)
    assert not is_broadcast_visible(viewer, _broadcast(meters=170), cache)


def test_radius_cache_is_thread_safe():
    started = threading.Barrier(8)
    calls = []

    def fetch(owner):
        calls.append(owner)
        return 100.0

    cache = RadiusCache(fetch, 160.0)

    def worker():
        started.wait()
        for _ in range(50):
            cache.get("same-owner")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert calls == ["same-owner"]


def test_filtered_records_cost_no_radius_lookup():
    calls = []
    cache = RadiusCache(lambda owner: calls.append(owner), 160.0)
    filter_nearby_broadcasts(_viewer(), [_broadcast(age=99), _broadcast(owner="viewer")], cache)
    assert calls == []


# --- profiles --------------------------------------------------------------

def test_height_to_inches():
    assert height_to_inches("5 ft 6 in") == 66
    assert height_to_inches("6 ft 0 in") == 72
    assert height_to_inches("tall") is None
    assert height_to_inches("") is None
    assert height_to_inches(None) is None


def _profile(uid, age=30, ethnicity="Asian", **fields):
    return {"user_id": uid, "name": uid, "age": age, "ethnicity": ethnicity, "fields": fields}


def test_nearby_profiles_radius_age_and_self():
    viewer = _viewer(radius_m=500)
    locations = {
        "near": north_of(ORIGIN, 100),
        "far": north_of(ORIGIN, 800),
        "old": north_of(ORIGIN, 100),
        "viewer": ORIGIN,
    }
    profiles = [_profile("near"), _profile("far"), _profile("old", age=70), _profile("viewer")]
    out = filter_nearby_profiles(viewer, profiles, locations)
    assert [p["user_id"] for p in out] == ["near"]


def test_premium_filters_only_when_given():
    viewer = _viewer(radius_m=500)
    locations = {"smoker": north_of(ORIGIN, 50), "short": north_of(ORIGIN, 50)}
    profiles = [
        _profile("smoker", smokes=True, height="5 ft 10 in"),
        _profile("short", smokes=False, height="5 ft 0 in"),
    ]
    prefs = {"smokes": False, "min_height_in": 62, "max_height_in": 80}

    assert len(filter_nearby_profiles(viewer, profiles, locations)) == 2
    assert filter_nearby_profiles(viewer, profiles, locations, prefs) == []

    prefs = {"smokes": True, "religion": ["Buddhist"]}
    out = filter_nearby_profiles(viewer, profiles, locations, prefs)
    # religion not on the profile, so it does not exclude
    assert [p["user_id"] for p in out] == ["smoker"]


def test_public_profile_only_shows_everyone_fields():
    fields = {"name": "Sam", "age": 30, "email": "sam@example.com", "height": "6 ft 0 in"}
    vis = {"name": "Everyone", "age": "everyone", "email": "hidden", "height": "connections"}
    assert public_profile(fields, vis) == {"name": "Sam", "age": 30}


def test_expiry_is_not_the_filters_concern():
    viewer = _viewer()
    rec = BroadcastRecord("x", "other", north_of(ORIGIN, 10), 30, "Asian", "hi",
                          datetime.now(timezone.utc) - timedelta(days=1))
    assert is_broadcast_visible(viewer, rec, _cache())
