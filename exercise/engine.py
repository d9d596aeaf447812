"""ExerciseEngine — session operations and the fixed-cadence integration loop.

Architecture
------------
The engine is the single entry point for every client operation and the
owner of the scheduler.  It holds the two shared stores (TrackRegistry and
SessionStore); everything else (ownership, spawn queue, recorder, snapshot
builders) reads and writes through them.

Concurrency model:
  Everything runs on one asyncio event loop.  Each operation below is one
  synchronous call with no ``await`` inside, so no operation is ever
  observed half-applied and no locking is needed.  The tick loop is an
  asyncio task that sleeps ``tick_interval_ms`` and then calls ``tick()``.

Tick (every session, in order):
  1. Promote ready NPC spawns if the session is started and unpaused;
     broadcast ``scenario:update`` when any were promoted.
  2. If the session is running, dead-reckon every live track from its
     ``last_update_ms`` to now.
  3. Broadcast ``state:snapshot`` (also while stopped or paused, so
     clients keep their clock in sync).
  4. Append the tick to the session's recorder if recording is on.

Time accounting:
  The tick is the only thing that integrates on a schedule.  Operations
  that set state directly (nav changes, placements, pause/resume, start)
  stamp ``last_update_ms`` with the moment of the edit, so the next tick
  integrates only what elapsed after it.  On a running session those
  operations first integrate the old velocity up to the edit, so no
  elapsed time is lost or counted twice.

Events are published on the EventBus tagged with their session id; the
websocket layer routes them to that session's connections.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable

from loguru import logger

from geo.units import bearing_to_offset

from . import ownership
from .errors import ErrorCode, ExerciseError
from .registry import TrackRegistry
from .session import SessionStore
from .snapshot import build_scenario_update, build_snapshot
from .spawn_queue import PendingSpawn
from .track import Role, Track, normalize_callsign

if TYPE_CHECKING:
    from comms.event_bus import EventBus

    from .commands import NpcSpec, Placement


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class EngineConfig:
    """Tunables for one engine instance."""

    tick_interval_ms: int = 2000
    nav_min_interval_ms: int = 100
    range_min_yds: float = 2000.0
    range_max_yds: float = 300000.0
    default_range_yds: float = 40000.0
    max_speed_kts: float = 60.0
    callsign_max_len: int = 12
    recording_capacity: int = 1800
    release_owner_on_disconnect: bool = False

    @classmethod
    def from_settings(cls, settings) -> EngineConfig:
        return cls(
            tick_interval_ms=settings.tick_interval_ms,
            nav_min_interval_ms=settings.nav_min_interval_ms,
            range_min_yds=settings.range_min_yds,
            range_max_yds=settings.range_max_yds,
            default_range_yds=settings.default_range_yds,
            max_speed_kts=settings.max_speed_kts,
            callsign_max_len=settings.callsign_max_len,
            recording_capacity=settings.recording_capacity,
            release_owner_on_disconnect=settings.release_owner_on_disconnect,
        )


class ExerciseEngine:
    """Runs every exercise session in the process."""

    def __init__(
        self,
        event_bus: EventBus,
        config: EngineConfig | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._event_bus = event_bus
        self.config = config or EngineConfig()
        self._clock = clock or wall_clock_ms
        self.registry = TrackRegistry(max_speed_kts=self.config.max_speed_kts)
        self.sessions = SessionStore(
            self.registry,
            range_min_yds=self.config.range_min_yds,
            range_max_yds=self.config.range_max_yds,
            default_range_yds=self.config.default_range_yds,
            recording_capacity=self.config.recording_capacity,
        )
        self._running = False
        self._task: asyncio.Task | None = None
        self._tick_count = 0

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def tick_count(self) -> int:
        return self._tick_count

    def now(self) -> int:
        return self._clock()

    # -- Sessions -----------------------------------------------------------

    def create_session(self, name: str | None, range_yds: float | None) -> dict:
        session_id, owner_token = self.sessions.create_session(name, range_yds, self.now())
        logger.info(f"Session {session_id} created")
        return {"ok": True, "sessionId": session_id, "ownerToken": owner_token}

    def claim_owner(self, conn_id: str, session_id: str, owner_token: str) -> dict:
        me = self.registry.find_by_conn(conn_id)
        ownership.claim(
            self.sessions, self.registry, session_id, owner_token,
            me.track_id if me is not None else None,
        )
        self._broadcast_snapshot(session_id)
        return {"ok": True}

    def join(self, conn_id: str, session_id: str, callsign: str | None) -> dict:
        """Add the connection's track to a session.

        Joining again from the same connection replaces its previous track,
        but only once the new join is known to succeed.
        """
        session = self.sessions.require(session_id)
        previous = self.registry.find_by_conn(conn_id)
        if previous is not None:
            role = self._join_role(session, leaving_id=previous.track_id)
            wanted = normalize_callsign(callsign, self.config.callsign_max_len, role)
            if self.registry.is_callsign_taken(session_id, wanted, excluding_id=previous.track_id):
                raise ExerciseError(ErrorCode.CALLSIGN_TAKEN, wanted)
            self._leave(previous)
            session = self.sessions.require(session_id)

        role = self._join_role(session)
        first = role is Role.GUIDE
        now = self.now()
        track = self.registry.create(Track(
            track_id=self._new_track_id("P-"),
            session_id=session_id,
            callsign=normalize_callsign(callsign, self.config.callsign_max_len, role),
            role=role,
            last_update_ms=now,
            conn_id=conn_id,
        ))
        self.sessions.add_member(session_id, track.track_id)
        if first:
            self.sessions.set_owner(session_id, track.track_id)
        logger.info(f"Session {session_id}: {track.callsign} joined as {role.value} ({track.track_id})")

        snapshot = self.snapshot(session_id)
        self._event_bus.publish("state:snapshot", snapshot, session_id=session_id)
        return {"ok": True, "snapshot": snapshot, "myTrackId": track.track_id, "myPlayerId": track.track_id}

    def disconnect(self, conn_id: str) -> None:
        """Implicit, unconditional leave.  Unknown connections are ignored."""
        me = self.registry.find_by_conn(conn_id)
        if me is not None:
            self._leave(me)

    def _leave(self, track: Track) -> None:
        self.registry.remove(track.track_id)
        session = self.sessions.get_session(track.session_id)
        if session is None:
            return
        self.sessions.remove_member(session.session_id, track.track_id)
        logger.info(f"Session {session.session_id}: {track.callsign} left ({track.track_id})")
        self._event_bus.publish("player:left", {"id": track.track_id}, session_id=session.session_id)
        if session.owner_id == track.track_id and self.config.release_owner_on_disconnect:
            ownership.release_seat(self.sessions, self.registry, session.session_id)
        self._broadcast_snapshot(session.session_id)

    def set_range(self, conn_id: str, session_id: str, range_yds: float | None) -> dict:
        applied = self.sessions.set_range(session_id, range_yds, self._requester(conn_id))
        self._broadcast_snapshot(session_id)
        return {"ok": True, "rangeYds": applied}

    def set_paused(self, conn_id: str, session_id: str, paused: bool) -> dict:
        self.sessions.set_paused(session_id, paused, self._requester(conn_id), self.now())
        logger.info(f"Session {session_id}: {'paused' if paused else 'resumed'}")
        self._broadcast_snapshot(session_id)
        return {"ok": True}

    def set_recording(self, conn_id: str, session_id: str, on: bool) -> dict:
        recording = self.sessions.set_recording(session_id, on, self._requester(conn_id))
        logger.info(f"Session {session_id}: recording {'on' if recording else 'off'}")
        self._broadcast_snapshot(session_id)
        return {"ok": True, "on": recording}

    # -- Scenario -----------------------------------------------------------

    def start_scenario(
        self,
        conn_id: str,
        session_id: str,
        placements: Iterable[Placement] = (),
        npcs: Iterable[NpcSpec] = (),
    ) -> dict:
        """Re-anchor the scenario around the guide and arm it.

        Placements and NPC specs are bearing/distance offsets from the
        guide's *current* position.  Existing NPCs and queued spawns are
        discarded.  Applied in one step, before anything is broadcast.
        """
        session = self.sessions.require_owner(session_id, self._requester(conn_id))
        now = self.now()
        self.sessions.catch_up(session_id, now)
        owner = self.registry.get(session.owner_id)
        origin_x, origin_y = (owner.x, owner.y) if owner is not None else (0.0, 0.0)

        placed = 0
        for pl in placements:
            track = self.registry.get(pl.player_id)
            if track is None or track.session_id != session_id or track.is_npc:
                continue
            dx, dy = bearing_to_offset(pl.bearing_deg or 0.0, pl.distance_yds or 0.0)
            self.registry.set_position(track.track_id, origin_x + dx, origin_y + dy, now)
            self.registry.set_nav(track.track_id, now, pl.course_deg, pl.speed_kts)
            placed += 1

        self.sessions.remove_npcs(session_id)
        session.spawn_queue.clear()
        spawned = 0
        for npc in npcs:
            dx, dy = bearing_to_offset(npc.bearing_deg or 0.0, npc.distance_yds or 0.0)
            self._enqueue_npc(
                session_id, npc.callsign, origin_x + dx, origin_y + dy,
                npc.course_deg, npc.speed_kts, npc.delay_sec, now,
            )
            spawned += 1

        for track_id in self.sessions.require(session_id).member_ids:
            self.registry.touch(track_id, now)
        self.sessions.set_flags(session_id, started=True, paused=False)
        logger.info(
            f"Session {session_id}: scenario started "
            f"({placed} placed, {spawned} NPCs)"
        )

        self._broadcast_scenario(session_id)
        self._broadcast_snapshot(session_id)
        return {"ok": True}

    def add_npc(
        self,
        conn_id: str,
        session_id: str,
        callsign: str | None,
        x: float | None,
        y: float | None,
        course_deg: float | None,
        speed_kts: float | None,
        delay_sec: float | None = None,
    ) -> dict:
        """Add one NPC at a plot position, now or after *delay_sec* seconds."""
        self.sessions.require_owner(session_id, self._requester(conn_id))
        result = self._enqueue_npc(
            session_id, callsign, x or 0.0, y or 0.0, course_deg, speed_kts, delay_sec, self.now(),
        )
        self._broadcast_scenario(session_id)
        self._broadcast_snapshot(session_id)
        return {"ok": True, **result}

    def clear_scenario(self, conn_id: str, session_id: str) -> dict:
        removed = self.sessions.clear_scenario(session_id, self._requester(conn_id), self.now())
        logger.info(f"Session {session_id}: scenario cleared ({len(removed)} NPCs removed)")
        self._broadcast_scenario(session_id)
        self._broadcast_snapshot(session_id)
        return {"ok": True}

    def _enqueue_npc(
        self,
        session_id: str,
        callsign: str | None,
        x: float,
        y: float,
        course_deg: float | None,
        speed_kts: float | None,
        delay_sec: float | None,
        now: int,
    ) -> dict:
        spawn = PendingSpawn(
            callsign=normalize_callsign(callsign, self.config.callsign_max_len, Role.NPC),
            x=x,
            y=y,
            course_deg=course_deg or 0.0,
            speed_kts=speed_kts or 0.0,
            ready_at_ms=now + int(max(0.0, delay_sec or 0.0) * 1000),
        )
        if spawn.ready_at_ms <= now:
            track = self._activate(session_id, spawn, now)
            return {"npcId": track.track_id}
        self.sessions.require(session_id).spawn_queue.enqueue(spawn)
        return {"spawnId": spawn.spawn_id, "readyAtMs": spawn.ready_at_ms}

    def _activate(self, session_id: str, spawn: PendingSpawn, now: int) -> Track:
        callsign = self.registry.unique_callsign(session_id, spawn.callsign, self.config.callsign_max_len)
        track = self.registry.create(Track(
            track_id=self._new_track_id("N-"),
            session_id=session_id,
            callsign=callsign,
            role=Role.NPC,
            x=spawn.x,
            y=spawn.y,
            course_deg=spawn.course_deg,
            speed_kts=spawn.speed_kts,
            heading_deg=spawn.course_deg,
            last_update_ms=now,
        ))
        self.sessions.add_member(session_id, track.track_id)
        return track

    # -- Navigation ---------------------------------------------------------

    def set_player_nav(
        self, conn_id: str, course_deg: float | None = None, speed_kts: float | None = None,
    ) -> bool:
        """Apply a helm order from a connection's own track.

        Orders closer together than ``nav_min_interval_ms`` are dropped.
        Returns True if the order was applied.
        """
        me = self.registry.find_by_conn(conn_id)
        if me is None:
            return False
        now = self.now()
        if me.last_nav_set_ms is not None and now - me.last_nav_set_ms < self.config.nav_min_interval_ms:
            logger.debug(f"Dropped rate-limited nav input from {me.callsign}")
            return False
        self._apply_nav(me, now, course_deg, speed_kts)
        self.registry.mark_nav_input(me.track_id, now)
        return True

    def set_npc_nav(
        self,
        conn_id: str,
        session_id: str,
        npc_id: str,
        course_deg: float | None = None,
        speed_kts: float | None = None,
    ) -> dict:
        self.sessions.require_owner(session_id, self._requester(conn_id))
        npc = self.registry.get(npc_id)
        if npc is None or npc.session_id != session_id or not npc.is_npc:
            raise ExerciseError(ErrorCode.NPC_NOT_FOUND, npc_id)
        self._apply_nav(npc, self.now(), course_deg, speed_kts)
        self._broadcast_snapshot(session_id)
        return {"ok": True}

    def _apply_nav(self, track: Track, now: int, course_deg: float | None, speed_kts: float | None) -> None:
        session = self.sessions.get_session(track.session_id)
        if session is not None and session.running:
            self.registry.advance(track.track_id, now)
        self.registry.set_nav(track.track_id, now, course_deg, speed_kts)

    # -- Read model ---------------------------------------------------------

    def snapshot(self, session_id: str) -> dict:
        session = self.sessions.require(session_id)
        return build_snapshot(session, self.registry.list_by_session(session_id), self.now())

    def scenario_view(self, session_id: str) -> dict:
        session = self.sessions.require(session_id)
        return build_scenario_update(session, self.registry.list_by_session(session_id))

    def export_recording(self, session_id: str) -> str | None:
        """CSV of the session's recording, or None if it never recorded."""
        session = self.sessions.require(session_id)
        if session.recorder is None:
            return None
        return session.recorder.to_csv()

    def list_sessions(self) -> list[dict]:
        views = []
        for session_id in self.sessions.session_ids():
            session = self.sessions.get_session(session_id)
            if session is not None:
                views.append({**session.public_view(), "members": len(session.member_ids)})
        return views

    def status(self) -> dict:
        return {
            "sessions": len(self.sessions),
            "tracks": self.registry.count(),
            "players": self.registry.count(Role.PLAYER) + self.registry.count(Role.GUIDE),
            "npcs": self.registry.count(Role.NPC),
            "ticks": self._tick_count,
        }

    def session_of(self, conn_id: str) -> str | None:
        me = self.registry.find_by_conn(conn_id)
        return me.session_id if me is not None else None

    # -- Scheduler ----------------------------------------------------------

    def tick(self, now_ms: int | None = None) -> None:
        """One scheduler pass over every session.  Never raises for missing state."""
        now = self.now() if now_ms is None else now_ms
        self._tick_count += 1
        for session_id in self.sessions.session_ids():
            session = self.sessions.get_session(session_id)
            if session is None:
                continue

            if session.running:
                ready = session.spawn_queue.pop_ready(now)
                for spawn in ready:
                    self._activate(session_id, spawn, now)
                if ready:
                    logger.debug(f"Session {session_id}: promoted {len(ready)} queued NPC(s)")
                    self._broadcast_scenario(session_id)

                for track_id in list(self.sessions.require(session_id).member_ids):
                    self.registry.advance(track_id, now)

            tracks = self.registry.list_by_session(session_id)
            self._event_bus.publish(
                "state:snapshot",
                build_snapshot(self.sessions.require(session_id), tracks, now),
                session_id=session_id,
            )
            if session.recording:
                session.recorder.append(now, tracks)

    def start(self) -> None:
        """Start the tick loop on the running event loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._tick_loop(), name="exercise-tick")
        logger.info(f"Integration scheduler started ({self.config.tick_interval_ms} ms cadence)")

    def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info("Integration scheduler stopped")

    async def _tick_loop(self) -> None:
        interval = self.config.tick_interval_ms / 1000.0
        while self._running:
            await asyncio.sleep(interval)
            try:
                self.tick()
            except Exception:
                logger.exception("Tick failed")

    # -- Internals ----------------------------------------------------------

    def _requester(self, conn_id: str) -> str | None:
        me = self.registry.find_by_conn(conn_id)
        return me.track_id if me is not None else None

    @staticmethod
    def _join_role(session, leaving_id: str | None = None) -> Role:
        """Guide for the first joiner of an ownerless, empty session."""
        others = [m for m in session.member_ids if m != leaving_id]
        return Role.GUIDE if not session.owner_id and not others else Role.PLAYER

    def _new_track_id(self, prefix: str) -> str:
        track_id = f"{prefix}{uuid.uuid4().hex[:8].upper()}"
        while self.registry.get(track_id) is not None:
            track_id = f"{prefix}{uuid.uuid4().hex[:8].upper()}"
        return track_id

    def _broadcast_snapshot(self, session_id: str) -> None:
        if self.sessions.get_session(session_id) is not None:
            self._event_bus.publish("state:snapshot", self.snapshot(session_id), session_id=session_id)

    def _broadcast_scenario(self, session_id: str) -> None:
        if self.sessions.get_session(session_id) is not None:
            self._event_bus.publish("scenario:update", self.scenario_view(session_id), session_id=session_id)
