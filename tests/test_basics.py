import logging

import pytest

from conflict import save_with_conflict_resolution
from errors import WriteConflict
from geo import Coordinate, distance_m, format_distance, is_within_radius
from helpers import MILE, ORIGIN, north_of
from logs import HANDLER_NAME, configure_logging
from moderation import contains_blocked_term, find_blocked_term
from settings import settings


def test_distance_san_francisco_to_los_angeles():
    la = Coordinate(34.0522, -118.2437)
    assert distance_m(ORIGIN, la) == pytest.approx(559_000, rel=0.01)
    assert distance_m(ORIGIN, ORIGIN) == 0.0


def test_is_within_radius_boundary():
    p = north_of(ORIGIN, 100)
    assert is_within_radius(p, ORIGIN, 100.001)
    assert not is_within_radius(p, ORIGIN, 99.9)


def test_coordinate_validation():
    with pytest.raises(ValueError):
        Coordinate(91, 0)
    with pytest.raises(ValueError):
        Coordinate(0, -181)


def test_format_distance():
    assert format_distance(MILE) == "1.0mi"
    assert format_distance(160.0) == "0.1mi"


def test_blocked_terms_case_insensitive_substring():
    assert contains_blocked_term("BullSHIT coffee")
    assert find_blocked_term("send venmo") == "venmo"
    assert not contains_blocked_term("Coffee House")
    assert not contains_blocked_term("")
    assert not contains_blocked_term(None)


def test_extra_blocked_terms_from_settings(monkeypatch):
    monkeypatch.setattr(settings, "extra_blocked_terms", ["Karaoke"])
    assert contains_blocked_term("karaoke night")


class _Store:
    def __init__(self, conflicts):
        self.conflicts = conflicts
        self.version = 1
        self.saved = None

    def save(self, record):
        if self.conflicts:
            self.conflicts -= 1
            self.version += 1
            raise WriteConflict("UserLocation", "u_location")
        self.saved = dict(record)
        return self.saved

    def latest(self):
        return {"user_id": "u", "lat": 0.0, "version": self.version}


def test_conflict_retry_merges_onto_latest():
    store = _Store(conflicts=2)
    saved = save_with_conflict_resolution(
        {"user_id": "u", "lat": 5.0, "version": 1},
        save=store.save,
        fetch_latest=store.latest,
        merge=lambda latest: {**latest, "lat": 5.0},
        max_attempts=3,
    )
    assert saved == {"user_id": "u", "lat": 5.0, "version": 3}


def test_conflict_retry_gives_up():
    store = _Store(conflicts=3)
    with pytest.raises(WriteConflict):
        save_with_conflict_resolution(
            {"user_id": "u", "lat": 5.0, "version": 1},
            save=store.save,
            fetch_latest=store.latest,
            merge=lambda latest: {**latest, "lat": 5.0},
            max_attempts=3,
        )
    assert store.saved is None


def test_configure_logging_installs_one_named_handler():
    root = logging.getLogger()
    configure_logging("DEBUG")
    configure_logging("INFO")

    ours = [h for h in root.handlers if h.get_name() == HANDLER_NAME]
    assert len(ours) == 1
    assert root.level == logging.INFO
