"""Session records and the SessionStore that owns them.

A session is one exercise instance: display range, owner binding, the
``started``/``paused`` run flags, the set of member track ids, its NPC spawn
queue and (optionally) its AAR recorder.  The store resolves membership
through the TrackRegistry and implements the uniform authorization contract
every owner-only operation uses: unknown session -> SESSION_NOT_FOUND,
requester is not the owner -> NOT_OWNER.
"""

from __future__ import annotations

import random
import secrets
import string
from dataclasses import dataclass, field, replace

from .errors import ErrorCode, ExerciseError
from .recorder import Recorder
from .registry import TrackRegistry
from .spawn_queue import NpcSpawnQueue
from .track import Role

_ID_ALPHABET = string.ascii_uppercase + string.digits


def _rid(prefix: str = "", length: int = 6) -> str:
    """Short human-typeable id, e.g. ``S-4K9QZA``."""
    return prefix + "".join(random.choice(_ID_ALPHABET) for _ in range(length))


@dataclass
class Session:
    """One exercise.  ``owner_token`` never leaves the server."""

    session_id: str
    name: str
    created_at_ms: int
    range_yds: float
    owner_token: str
    owner_id: str = ""
    started: bool = False
    paused: bool = False
    member_ids: list[str] = field(default_factory=list)  # join order
    spawn_queue: NpcSpawnQueue = field(default_factory=NpcSpawnQueue)
    recorder: Recorder | None = None

    @property
    def running(self) -> bool:
        return self.started and not self.paused

    @property
    def recording(self) -> bool:
        return self.recorder is not None and self.recorder.active

    def public_view(self) -> dict:
        """Client-visible session fields (no owner token)."""
        return {
            "id": self.session_id,
            "name": self.name,
            "createdAt": self.created_at_ms,
            "ownerId": self.owner_id,
            "rangeYds": self.range_yds,
            "started": self.started,
            "paused": self.paused,
            "recording": self.recording,
        }


class SessionStore:
    """Owns every live Session; mutations only through the methods below."""

    def __init__(
        self,
        registry: TrackRegistry,
        range_min_yds: float = 2000.0,
        range_max_yds: float = 300000.0,
        default_range_yds: float = 40000.0,
        recording_capacity: int = 1800,
    ) -> None:
        self._registry = registry
        self._sessions: dict[str, Session] = {}
        self._range_min = range_min_yds
        self._range_max = range_max_yds
        self._default_range = default_range_yds
        self._recording_capacity = recording_capacity

    # -- Queries ------------------------------------------------------------

    def get_session(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return replace(session, member_ids=list(session.member_ids))

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise ExerciseError(ErrorCode.SESSION_NOT_FOUND, session_id)
        return session

    def require_owner(self, session_id: str, requester_id: str | None) -> Session:
        """Existence first, then authorization."""
        session = self.require(session_id)
        if not requester_id or session.owner_id != requester_id:
            raise ExerciseError(ErrorCode.NOT_OWNER, session_id)
        return session

    # -- Lifecycle ----------------------------------------------------------

    def create_session(self, name: str | None, range_yds: float | None, now_ms: int) -> tuple[str, str]:
        session_id = _rid("S-")
        while session_id in self._sessions:
            session_id = _rid("S-")
        owner_token = "T-" + secrets.token_urlsafe(24)
        self._sessions[session_id] = Session(
            session_id=session_id,
            name=(name or "").strip() or "Session",
            created_at_ms=now_ms,
            range_yds=self.clamp_range(range_yds, self._default_range),
            owner_token=owner_token,
        )
        return session_id, owner_token

    def add_member(self, session_id: str, track_id: str) -> None:
        session = self.require(session_id)
        if track_id not in session.member_ids:
            session.member_ids.append(track_id)

    def remove_member(self, session_id: str, track_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None or track_id not in session.member_ids:
            return False
        session.member_ids.remove(track_id)
        return True

    def set_owner(self, session_id: str, track_id: str) -> None:
        self.require(session_id).owner_id = track_id

    def set_flags(self, session_id: str, started: bool | None = None, paused: bool | None = None) -> None:
        session = self.require(session_id)
        if started is not None:
            session.started = started
        if paused is not None:
            session.paused = paused

    # -- Owner-gated operations ---------------------------------------------

    def clamp_range(self, range_yds: float | None, fallback: float) -> float:
        if not range_yds:
            range_yds = fallback
        return min(max(float(range_yds), self._range_min), self._range_max)

    def set_range(self, session_id: str, range_yds: float | None, requester_id: str | None) -> float:
        session = self.require_owner(session_id, requester_id)
        session.range_yds = self.clamp_range(range_yds, session.range_yds)
        return session.range_yds

    def set_paused(self, session_id: str, paused: bool, requester_id: str | None, now_ms: int) -> None:
        """Freeze or resume.  Both edges re-anchor every track to *now_ms*.

        Anchoring on pause stops elapsed time from accumulating; anchoring
        again on resume keeps the first tick after the pause from
        integrating the pause gap.
        """
        session = self.require_owner(session_id, requester_id)
        self.catch_up(session_id, now_ms)
        session.paused = bool(paused)
        for track_id in session.member_ids:
            self._registry.touch(track_id, now_ms)

    def clear_scenario(self, session_id: str, requester_id: str | None, now_ms: int) -> list[str]:
        """Remove every NPC, empty the spawn queue and disarm the scenario."""
        session = self.require_owner(session_id, requester_id)
        self.catch_up(session_id, now_ms)
        removed = self.remove_npcs(session_id)
        session.spawn_queue.clear()
        session.started = False
        return removed

    def catch_up(self, session_id: str, now_ms: int) -> None:
        """Integrate a running session's tracks up to *now_ms* before a state change."""
        session = self.require(session_id)
        if session.running:
            for track_id in session.member_ids:
                self._registry.advance(track_id, now_ms)

    def remove_npcs(self, session_id: str) -> list[str]:
        session = self.require(session_id)
        removed: list[str] = []
        for track_id in list(session.member_ids):
            track = self._registry.get(track_id)
            if track is not None and track.role is Role.NPC:
                self._registry.remove(track_id)
                session.member_ids.remove(track_id)
                removed.append(track_id)
        return removed

    def set_recording(self, session_id: str, on: bool, requester_id: str | None) -> bool:
        """Toggle AAR recording.  Off -> on starts a fresh buffer."""
        session = self.require_owner(session_id, requester_id)
        if on:
            if not session.recording:
                session.recorder = Recorder(capacity=self._recording_capacity)
                session.recorder.active = True
        elif session.recorder is not None:
            session.recorder.active = False
        return session.recording
