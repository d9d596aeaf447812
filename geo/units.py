"""Plane geometry and unit conversions for the exercise plot.

Convention:
    - 1 local unit = 1 yard
    - +X = East, +Y = North
    - Course and bearing are degrees clockwise from North

The same math is mirrored in the radar client so both ends agree on where
a bearing/range places a contact.
"""

from __future__ import annotations

import math

YARDS_PER_NM = 2025.371828521
KTS_TO_YDS_PER_SEC = YARDS_PER_NM / 3600.0


def normalize_deg(deg: float) -> float:
    """Wrap an angle into [0, 360)."""
    wrapped = math.fmod(deg, 360.0)
    if wrapped < 0:
        wrapped += 360.0
    # fmod(-1e-18, 360) + 360 rounds to 360.0
    if wrapped >= 360.0:
        wrapped = 0.0
    return wrapped


def velocity_components(speed_kts: float, course_deg: float) -> tuple[float, float]:
    """Return (vx, vy) in yards/second for a speed and course."""
    v = speed_kts * KTS_TO_YDS_PER_SEC
    rad = math.radians(normalize_deg(course_deg))
    return (v * math.sin(rad), v * math.cos(rad))


def bearing_to_offset(bearing_deg: float, distance_yds: float) -> tuple[float, float]:
    """Convert a bearing/distance from a reference point into (dx, dy) yards."""
    rad = math.radians(normalize_deg(bearing_deg))
    return (distance_yds * math.sin(rad), distance_yds * math.cos(rad))


def dead_reckon(
    x: float, y: float, speed_kts: float, course_deg: float, dt: float,
) -> tuple[float, float]:
    """Advance a position at constant course/speed for *dt* seconds."""
    if dt <= 0:
        return (x, y)
    vx, vy = velocity_components(speed_kts, course_deg)
    return (x + vx * dt, y + vy * dt)
