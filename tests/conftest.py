"""Shared fixtures: a controllable clock and an engine wired to it."""

from __future__ import annotations

import pytest

from comms.event_bus import EventBus
from exercise.engine import EngineConfig, ExerciseEngine


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> int:
        self.now_ms += int(ms)
        return self.now_ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> EventBus:
    return EventBus(maxsize=1000)


@pytest.fixture
def engine(bus: EventBus, clock: FakeClock) -> ExerciseEngine:
    return ExerciseEngine(bus, EngineConfig(), clock=clock)
