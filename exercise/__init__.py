"""Exercise session engine — tracks, sessions, ownership, NPC spawns, AAR recording."""
from exercise.engine import EngineConfig, ExerciseEngine
from exercise.errors import ErrorCode, ExerciseError
from exercise.recorder import CSV_HEADER, Recorder
from exercise.registry import TrackRegistry
from exercise.session import Session, SessionStore
from exercise.spawn_queue import NpcSpawnQueue, PendingSpawn
from exercise.track import Role, Track, normalize_callsign

__all__ = [
    "CSV_HEADER",
    "EngineConfig",
    "ErrorCode",
    "ExerciseEngine",
    "ExerciseError",
    "NpcSpawnQueue",
    "PendingSpawn",
    "Recorder",
    "Role",
    "Session",
    "SessionStore",
    "Track",
    "TrackRegistry",
    "normalize_callsign",
]
