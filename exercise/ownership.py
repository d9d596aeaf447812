"""Ownership protocol — binding one track to guide privileges.

A session is created with a secret token known only to the creating
client.  Presenting ``(session_id, owner_token)`` from a joined connection
makes that connection's track the owner, whatever the previous owner was.
This is how a guide who dropped off the network takes the seat back with a
new connection and a new track id.

A disconnecting owner does not release the seat by default; ``owner_id``
keeps pointing at the dead track until someone reclaims it with the token.
``release_seat`` implements the alternative policy when the engine is
configured for it.
"""

from __future__ import annotations

import secrets

from loguru import logger

from .errors import ErrorCode, ExerciseError
from .registry import TrackRegistry
from .session import SessionStore
from .track import Role


def transfer(store: SessionStore, registry: TrackRegistry, session_id: str, new_owner_id: str) -> None:
    """Make *new_owner_id* the guide, demoting the previous owner if it is still live."""
    session = store.require(session_id)
    previous = session.owner_id
    if previous and previous != new_owner_id:
        old = registry.get(previous)
        if old is not None and old.role is Role.GUIDE:
            registry.set_role(previous, Role.PLAYER)
    registry.set_role(new_owner_id, Role.GUIDE)
    store.set_owner(session_id, new_owner_id)


def claim(
    store: SessionStore,
    registry: TrackRegistry,
    session_id: str,
    owner_token: str | None,
    claimant_id: str | None,
) -> None:
    """Bind the claimant's track to the owner seat if the token matches.

    Raises NOT_FOUND when the session is unknown or the claimant has no
    track in it, and BAD_TOKEN on a token mismatch.  ``owner_id`` is left
    untouched on failure.
    """
    session = store.get_session(session_id)
    claimant = registry.get(claimant_id) if claimant_id else None
    if session is None or claimant is None or claimant.session_id != session_id:
        raise ExerciseError(ErrorCode.NOT_FOUND)
    if claimant.is_npc:
        raise ExerciseError(ErrorCode.NOT_FOUND)
    if not secrets.compare_digest(str(owner_token or "").encode(), session.owner_token.encode()):
        raise ExerciseError(ErrorCode.BAD_TOKEN)
    transfer(store, registry, session_id, claimant.track_id)
    logger.info(f"Session {session_id}: ownership claimed by {claimant.callsign} ({claimant.track_id})")


def release_seat(store: SessionStore, registry: TrackRegistry, session_id: str) -> str:
    """Hand the seat of a departed owner to the earliest-joined remaining player.

    Returns the new owner id, or "" if nobody is left to take it.
    """
    session = store.require(session_id)
    for track_id in session.member_ids:
        track = registry.get(track_id)
        if track is not None and track.role is Role.PLAYER:
            transfer(store, registry, session_id, track_id)
            logger.info(f"Session {session_id}: guide seat passed to {track.callsign}")
            return track_id
    store.set_owner(session_id, "")
    return ""
