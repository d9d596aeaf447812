"""Delayed NPC spawns, one queue per session.

An entry waits here until its wall-clock ready time; the scheduler then
pops it and creates the NPC track in the same synchronous step, so an
entry is never both queued and active.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace


@dataclass
class PendingSpawn:
    """Target state for an NPC that is not on the plot yet."""

    callsign: str
    x: float
    y: float
    course_deg: float
    speed_kts: float
    ready_at_ms: int = 0
    spawn_id: str = field(default_factory=lambda: f"Q-{uuid.uuid4().hex[:8]}")

    def to_dict(self) -> dict:
        return {
            "id": self.spawn_id,
            "callsign": self.callsign,
            "x": self.x,
            "y": self.y,
            "courseDeg": self.course_deg,
            "speedKts": self.speed_kts,
            "readyAtMs": self.ready_at_ms,
        }


class NpcSpawnQueue:
    """Pending spawns in enqueue order."""

    def __init__(self) -> None:
        self._pending: list[PendingSpawn] = []

    def __len__(self) -> int:
        return len(self._pending)

    def enqueue(self, spawn: PendingSpawn) -> None:
        self._pending.append(spawn)

    def pending(self) -> list[PendingSpawn]:
        return [replace(s) for s in self._pending]

    def pop_ready(self, now_ms: int) -> list[PendingSpawn]:
        """Remove and return every entry whose ready time has passed."""
        ready = [s for s in self._pending if s.ready_at_ms <= now_ms]
        if ready:
            self._pending = [s for s in self._pending if s.ready_at_ms > now_ms]
        return ready

    def clear(self) -> int:
        count = len(self._pending)
        self._pending.clear()
        return count
