"""Track — one positioned, moving entity in an exercise.

Architecture
------------
Track is a *flat dataclass*.  Guide, player and NPC records share the same
fields; the ``role`` tag says which one a record is.  The role is set when
the track is created and changed only by the ownership claim (player <->
guide), never inferred from connection state at read time.

Kinematic state is plain constant-velocity dead reckoning: position in
yards, course clockwise from North, speed in knots.  ``last_update_ms`` is
the simulation time through which the position is already integrated; the
scheduler integrates from there to "now" on every tick.

Tracks handed out by the registry are copies.  Mutation goes through the
registry's setters so invariants (course normalization, speed clamp,
monotonic ``last_update_ms``) are enforced in one place.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    GUIDE = "guide"
    PLAYER = "player"
    NPC = "npc"


_DEFAULT_CALLSIGNS: dict[Role, str] = {
    Role.GUIDE: "GUIDE",
    Role.PLAYER: "SHIP",
    Role.NPC: "SKUNK",
}

_CALLSIGN_STRIP = re.compile(r"[^A-Z0-9-]")


def normalize_callsign(raw: str | None, max_len: int = 12, role: Role = Role.PLAYER) -> str:
    """Uppercase, keep ``A-Z 0-9 -``, truncate; empty falls back to a role default."""
    cleaned = _CALLSIGN_STRIP.sub("", str(raw or "").upper())[:max_len]
    return cleaned or _DEFAULT_CALLSIGNS[role]


@dataclass
class Track:
    """A guide, player or NPC contact in one session."""

    track_id: str
    session_id: str
    callsign: str
    role: Role
    x: float = 0.0  # yards east of the world origin
    y: float = 0.0  # yards north of the world origin
    course_deg: float = 0.0
    speed_kts: float = 0.0
    heading_deg: float = 0.0  # mirrors course_deg
    last_update_ms: int = 0
    last_nav_set_ms: int | None = None
    conn_id: str | None = None  # None for NPCs

    @property
    def is_npc(self) -> bool:
        return self.role is Role.NPC

    def to_dict(self) -> dict:
        """Serialize for snapshots (camelCase, as the radar client expects)."""
        return {
            "id": self.track_id,
            "callsign": self.callsign,
            "role": self.role.value,
            "x": self.x,
            "y": self.y,
            "courseDeg": self.course_deg,
            "speedKts": self.speed_kts,
            "headingDeg": self.heading_deg,
            "lastUpdateMs": self.last_update_ms,
        }
