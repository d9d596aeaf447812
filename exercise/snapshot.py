"""Read-model builders for what clients see.

Pure functions over copies handed out by the stores: calling them any
number of times has no side effects.
"""

from __future__ import annotations

from .session import Session
from .track import Track


def build_snapshot(session: Session, tracks: list[Track], server_time_ms: int) -> dict:
    """Payload of ``state:snapshot``: clock, public session view, every live track."""
    return {
        "serverTimeMs": server_time_ms,
        "session": session.public_view(),
        "players": [t.to_dict() for t in tracks],
    }


def build_scenario_update(session: Session, tracks: list[Track]) -> dict:
    """Payload of ``scenario:update``: pending spawns and active NPCs."""
    return {
        "queue": [s.to_dict() for s in session.spawn_queue.pending()],
        "active": [t.to_dict() for t in tracks if t.is_npc],
    }
