"""Unit tests for TrackRegistry — ownership of every Track record."""

from __future__ import annotations

import pytest

from exercise.errors import ErrorCode, ExerciseError
from exercise.registry import TrackRegistry
from exercise.track import Role, Track, normalize_callsign
from geo.units import KTS_TO_YDS_PER_SEC

pytestmark = pytest.mark.unit


def _make_track(
    track_id: str = "P-1",
    session_id: str = "S-1",
    callsign: str = "ALPHA",
    role: Role = Role.PLAYER,
    **kwargs,
) -> Track:
    return Track(track_id=track_id, session_id=session_id, callsign=callsign, role=role, **kwargs)


class TestNormalizeCallsign:

    def test_uppercases_and_strips(self):
        assert normalize_callsign("bravo 2!") == "BRAVO2"

    def test_keeps_hyphen(self):
        assert normalize_callsign("red-1") == "RED-1"

    def test_truncates(self):
        assert normalize_callsign("abcdefghijklmnop") == "ABCDEFGHIJKL"

    def test_empty_uses_role_default(self):
        assert normalize_callsign("", role=Role.GUIDE) == "GUIDE"
        assert normalize_callsign(None, role=Role.PLAYER) == "SHIP"
        assert normalize_callsign("***", role=Role.NPC) == "SKUNK"


class TestCreate:

    def test_create_and_get(self):
        reg = TrackRegistry()
        reg.create(_make_track())
        assert reg.get("P-1").callsign == "ALPHA"

    def test_get_returns_copy(self):
        reg = TrackRegistry()
        reg.create(_make_track())
        copy = reg.get("P-1")
        copy.x = 999.0
        assert reg.get("P-1").x == 0.0

    def test_callsign_taken_case_insensitive(self):
        reg = TrackRegistry()
        reg.create(_make_track(callsign="Alpha"))
        with pytest.raises(ExerciseError) as exc:
            reg.create(_make_track(track_id="P-2", callsign="ALPHA"))
        assert exc.value.code is ErrorCode.CALLSIGN_TAKEN
        assert reg.get("P-2") is None

    def test_same_callsign_other_session_allowed(self):
        reg = TrackRegistry()
        reg.create(_make_track())
        reg.create(_make_track(track_id="P-2", session_id="S-2"))
        assert reg.count() == 2

    def test_duplicate_id_rejected(self):
        reg = TrackRegistry()
        reg.create(_make_track())
        with pytest.raises(ValueError):
            reg.create(_make_track(callsign="OTHER"))

    def test_one_track_per_connection(self):
        reg = TrackRegistry()
        reg.create(_make_track(conn_id="c1"))
        with pytest.raises(ValueError):
            reg.create(_make_track(track_id="P-2", callsign="OTHER", conn_id="c1"))

    def test_create_normalizes_course_and_clamps_speed(self):
        reg = TrackRegistry(max_speed_kts=30)
        t = reg.create(_make_track(course_deg=-90, speed_kts=99))
        assert t.course_deg == 270
        assert t.heading_deg == 270
        assert t.speed_kts == 30


class TestRemove:

    def test_remove_frees_callsign(self):
        reg = TrackRegistry()
        reg.create(_make_track(conn_id="c1"))
        reg.remove("P-1")
        assert not reg.is_callsign_taken("S-1", "alpha")
        assert reg.find_by_conn("c1") is None
        reg.create(_make_track(track_id="P-2", conn_id="c1"))

    def test_remove_is_idempotent(self):
        reg = TrackRegistry()
        reg.create(_make_track())
        assert reg.remove("P-1") is not None
        assert reg.remove("P-1") is None
        assert reg.remove("never") is None


class TestQueries:

    def test_list_by_session_in_creation_order(self):
        reg = TrackRegistry()
        reg.create(_make_track("P-1", callsign="A"))
        reg.create(_make_track("P-2", callsign="B", session_id="S-2"))
        reg.create(_make_track("P-3", callsign="C"))
        assert [t.track_id for t in reg.list_by_session("S-1")] == ["P-1", "P-3"]

    def test_list_returns_copies(self):
        reg = TrackRegistry()
        reg.create(_make_track())
        reg.list_by_session("S-1")[0].callsign = "HACKED"
        assert reg.get("P-1").callsign == "ALPHA"

    def test_is_callsign_taken_excluding(self):
        reg = TrackRegistry()
        reg.create(_make_track())
        assert reg.is_callsign_taken("S-1", "alpha")
        assert not reg.is_callsign_taken("S-1", "alpha", excluding_id="P-1")

    def test_unique_callsign_suffixes(self):
        reg = TrackRegistry()
        reg.create(_make_track("N-1", callsign="SKUNK", role=Role.NPC))
        assert reg.unique_callsign("S-1", "SKUNK") == "SKUNK-2"
        reg.create(_make_track("N-2", callsign="SKUNK-2", role=Role.NPC))
        assert reg.unique_callsign("S-1", "SKUNK") == "SKUNK-3"

    def test_unique_callsign_respects_length(self):
        reg = TrackRegistry()
        reg.create(_make_track(callsign="ABCDEFGHIJKL"))
        name = reg.unique_callsign("S-1", "ABCDEFGHIJKL", max_len=12)
        assert name == "ABCDEFGHIJ-2"
        assert len(name) == 12

    def test_count_by_role(self):
        reg = TrackRegistry()
        reg.create(_make_track("P-1", callsign="A", role=Role.GUIDE))
        reg.create(_make_track("P-2", callsign="B"))
        reg.create(_make_track("N-1", callsign="C", role=Role.NPC))
        assert reg.count() == 3
        assert reg.count(Role.NPC) == 1


class TestSetters:

    def test_set_nav_partial_update(self):
        reg = TrackRegistry()
        reg.create(_make_track(course_deg=45, speed_kts=5))
        t = reg.set_nav("P-1", 1000, speed_kts=8)
        assert t.course_deg == 45
        assert t.speed_kts == 8
        assert t.last_update_ms == 1000

    def test_set_nav_normalizes_and_clamps(self):
        reg = TrackRegistry(max_speed_kts=40)
        reg.create(_make_track())
        t = reg.set_nav("P-1", 1000, course_deg=370, speed_kts=-3)
        assert t.course_deg == pytest.approx(10)
        assert t.heading_deg == pytest.approx(10)
        assert t.speed_kts == 0
        t = reg.set_nav("P-1", 1000, speed_kts=100)
        assert t.speed_kts == 40

    def test_last_update_never_decreases(self):
        reg = TrackRegistry()
        reg.create(_make_track(last_update_ms=5000))
        reg.set_position("P-1", 1.0, 2.0, 1000)
        reg.touch("P-1", 3000)
        assert reg.get("P-1").last_update_ms == 5000

    def test_set_role(self):
        reg = TrackRegistry()
        reg.create(_make_track())
        reg.set_role("P-1", Role.GUIDE)
        assert reg.get("P-1").role is Role.GUIDE

    def test_setters_on_missing_track(self):
        reg = TrackRegistry()
        assert reg.set_nav("nope", 0, 1, 1) is None
        assert reg.set_position("nope", 0, 0, 0) is None
        assert reg.set_role("nope", Role.NPC) is None
        assert reg.advance("nope", 0) is False


class TestAdvance:

    def test_advance_east(self):
        reg = TrackRegistry()
        reg.create(_make_track(course_deg=90, speed_kts=10, last_update_ms=0))
        assert reg.advance("P-1", 4000) is True
        t = reg.get("P-1")
        assert t.x == pytest.approx(10 * KTS_TO_YDS_PER_SEC * 4)
        assert t.y == pytest.approx(0.0, abs=1e-9)
        assert t.last_update_ms == 4000

    def test_advance_zero_dt_skipped(self):
        reg = TrackRegistry()
        reg.create(_make_track(speed_kts=10, last_update_ms=4000))
        assert reg.advance("P-1", 4000) is False
        assert reg.advance("P-1", 3000) is False
        assert reg.get("P-1").last_update_ms == 4000
