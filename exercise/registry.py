"""TrackRegistry — the authoritative owner of every Track in the process.

All reads return copies; all writes go through the setters below.  The
registry is touched only from the event loop thread, and every method is a
single synchronous step, so no locking is needed.
"""

from __future__ import annotations

from dataclasses import replace

from geo.units import dead_reckon, normalize_deg

from .errors import ErrorCode, ExerciseError
from .track import Role, Track


class TrackRegistry:
    """Tracks keyed by id, with per-connection and per-session callsign indexes."""

    def __init__(self, max_speed_kts: float = 60.0) -> None:
        self._tracks: dict[str, Track] = {}
        self._by_conn: dict[str, str] = {}  # conn_id -> track_id
        self._max_speed_kts = max_speed_kts

    # -- Queries ------------------------------------------------------------

    def get(self, track_id: str) -> Track | None:
        track = self._tracks.get(track_id)
        return replace(track) if track is not None else None

    def find_by_conn(self, conn_id: str) -> Track | None:
        track_id = self._by_conn.get(conn_id)
        return self.get(track_id) if track_id is not None else None

    def list_by_session(self, session_id: str) -> list[Track]:
        """Copies of the session's live tracks, in creation order."""
        return [replace(t) for t in self._tracks.values() if t.session_id == session_id]

    def is_callsign_taken(
        self, session_id: str, callsign: str, excluding_id: str | None = None,
    ) -> bool:
        wanted = callsign.upper()
        for t in self._tracks.values():
            if t.session_id != session_id or t.track_id == excluding_id:
                continue
            if t.callsign.upper() == wanted:
                return True
        return False

    def unique_callsign(self, session_id: str, base: str, max_len: int = 12) -> str:
        """Return *base*, or *base*-N (trimmed to fit *max_len*) if *base* is in use."""
        name = base
        suffix = 2
        while self.is_callsign_taken(session_id, name):
            tail = f"-{suffix}"
            name = base[: max_len - len(tail)] + tail
            suffix += 1
        return name

    def count(self, role: Role | None = None) -> int:
        if role is None:
            return len(self._tracks)
        return sum(1 for t in self._tracks.values() if t.role is role)

    # -- Lifecycle ----------------------------------------------------------

    def create(self, track: Track) -> Track:
        """Store a new track.  Raises CALLSIGN_TAKEN on a session collision."""
        if track.track_id in self._tracks:
            raise ValueError(f"duplicate track id {track.track_id}")
        if track.conn_id is not None and track.conn_id in self._by_conn:
            raise ValueError(f"connection {track.conn_id} already has a track")
        if self.is_callsign_taken(track.session_id, track.callsign):
            raise ExerciseError(ErrorCode.CALLSIGN_TAKEN, track.callsign)

        stored = replace(
            track,
            course_deg=normalize_deg(track.course_deg),
            heading_deg=normalize_deg(track.course_deg),
            speed_kts=self._clamp_speed(track.speed_kts),
        )
        self._tracks[stored.track_id] = stored
        if stored.conn_id is not None:
            self._by_conn[stored.conn_id] = stored.track_id
        return replace(stored)

    def remove(self, track_id: str) -> Track | None:
        """Drop a track.  Absent ids are a no-op (duplicate disconnects)."""
        track = self._tracks.pop(track_id, None)
        if track is None:
            return None
        if track.conn_id is not None:
            self._by_conn.pop(track.conn_id, None)
        return track

    # -- Setters ------------------------------------------------------------

    def set_nav(
        self,
        track_id: str,
        now_ms: int,
        course_deg: float | None = None,
        speed_kts: float | None = None,
    ) -> Track | None:
        track = self._tracks.get(track_id)
        if track is None:
            return None
        if course_deg is not None:
            track.course_deg = normalize_deg(course_deg)
        if speed_kts is not None:
            track.speed_kts = self._clamp_speed(speed_kts)
        track.heading_deg = track.course_deg
        self._stamp(track, now_ms)
        return replace(track)

    def mark_nav_input(self, track_id: str, now_ms: int) -> None:
        track = self._tracks.get(track_id)
        if track is not None:
            track.last_nav_set_ms = now_ms

    def set_position(self, track_id: str, x: float, y: float, now_ms: int) -> Track | None:
        track = self._tracks.get(track_id)
        if track is None:
            return None
        track.x = x
        track.y = y
        self._stamp(track, now_ms)
        return replace(track)

    def set_role(self, track_id: str, role: Role) -> Track | None:
        track = self._tracks.get(track_id)
        if track is None:
            return None
        track.role = role
        return replace(track)

    def touch(self, track_id: str, now_ms: int) -> None:
        """Mark a track as integrated through *now_ms* without moving it."""
        track = self._tracks.get(track_id)
        if track is not None:
            self._stamp(track, now_ms)

    def advance(self, track_id: str, now_ms: int) -> bool:
        """Dead-reckon a track forward to *now_ms*.  Returns True if it moved."""
        track = self._tracks.get(track_id)
        if track is None:
            return False
        dt = max(0, now_ms - track.last_update_ms) / 1000.0
        if dt == 0:
            return False
        track.x, track.y = dead_reckon(track.x, track.y, track.speed_kts, track.course_deg, dt)
        track.last_update_ms = now_ms
        return True

    # -- Internals ----------------------------------------------------------

    def _clamp_speed(self, speed_kts: float) -> float:
        return min(max(float(speed_kts), 0.0), self._max_speed_kts)

    @staticmethod
    def _stamp(track: Track, now_ms: int) -> None:
        # last_update_ms never decreases
        track.last_update_ms = max(track.last_update_ms, now_ms)
