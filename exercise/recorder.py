"""AAR recorder — bounded per-session log of track states, one entry per tick.

The buffer is a ring: once ``capacity`` ticks are held, appending a tick
evicts the oldest one.  Export flattens ticks into CSV rows in tick order,
then track order within a tick.  Uses the stdlib csv module.
"""

from __future__ import annotations

import csv
import io
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Iterator

from .track import Track

CSV_HEADER = ["serverTimeMs", "id", "role", "callsign", "x", "y", "courseDeg", "speedKts"]


@dataclass(frozen=True)
class RecordedRow:
    track_id: str
    role: str
    callsign: str
    x: float
    y: float
    course_deg: float
    speed_kts: float


@dataclass(frozen=True)
class RecordedTick:
    server_time_ms: int
    rows: tuple[RecordedRow, ...]


class Recorder:
    """Ring buffer of recorded ticks."""

    def __init__(self, capacity: int = 1800) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._ticks: deque[RecordedTick] = deque(maxlen=capacity)
        self.active = False

    @property
    def capacity(self) -> int:
        return self._ticks.maxlen or 0

    def __len__(self) -> int:
        return len(self._ticks)

    def append(self, server_time_ms: int, tracks: Iterable[Track]) -> RecordedTick:
        tick = RecordedTick(
            server_time_ms=server_time_ms,
            rows=tuple(
                RecordedRow(
                    track_id=t.track_id,
                    role=t.role.value,
                    callsign=t.callsign,
                    x=t.x,
                    y=t.y,
                    course_deg=t.course_deg,
                    speed_kts=t.speed_kts,
                )
                for t in tracks
            ),
        )
        self._ticks.append(tick)
        return tick

    def ticks(self) -> list[RecordedTick]:
        return list(self._ticks)

    def iter_rows(self) -> Iterator[list]:
        for tick in self._ticks:
            for row in tick.rows:
                yield [
                    tick.server_time_ms,
                    row.track_id,
                    row.role,
                    row.callsign,
                    row.x,
                    row.y,
                    row.course_deg,
                    row.speed_kts,
                ]

    def to_csv(self) -> str:
        """Header line, then one line per track per recorded tick."""
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        writer.writerows(self.iter_rows())
        return buf.getvalue()
