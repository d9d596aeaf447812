"""Client commands — a closed set of message types and one dispatcher.

Every inbound message is validated into exactly one of the models below by
its ``type`` field, then routed to the matching ExerciseEngine operation.
Payload keys are camelCase on the wire (``sessionId``, ``rangeYds``...).

Numeric fields are lenient: missing, non-numeric, NaN or infinite values
become ``None`` and the operation applies its default instead of rejecting
the message.  Only a message that is not an object or names an unknown
``type`` is refused, with BAD_REQUEST.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Annotated, Any, Literal, Optional, Union

from loguru import logger
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from .errors import ErrorCode, ExerciseError

if TYPE_CHECKING:
    from .engine import ExerciseEngine


def _lenient_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _lenient_str(value: Any) -> str:
    return "" if value is None else str(value)


def _lenient_list(value: Any) -> list:
    """Non-lists become empty; entries that are not objects are dropped."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


_TRUE_WORDS = {"true", "1", "yes", "on"}


def _lenient_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_WORDS
    number = _lenient_float(value)
    return bool(number)


OptFloat = Annotated[Optional[float], BeforeValidator(_lenient_float)]
Text = Annotated[str, BeforeValidator(_lenient_str)]
Flag = Annotated[bool, BeforeValidator(_lenient_flag)]


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# -- Nested payloads --------------------------------------------------------

class Placement(_Payload):
    """Where to put an existing player at scenario start, relative to the guide."""

    player_id: Text = ""
    bearing_deg: OptFloat = None
    distance_yds: OptFloat = None
    course_deg: OptFloat = None
    speed_kts: OptFloat = None


class NpcSpec(_Payload):
    """An NPC to spawn at scenario start, relative to the guide."""

    callsign: Text = ""
    bearing_deg: OptFloat = None
    distance_yds: OptFloat = None
    course_deg: OptFloat = None
    speed_kts: OptFloat = None
    delay_sec: OptFloat = None


# -- Commands ---------------------------------------------------------------

class CreateSession(_Payload):
    type: Literal["session:create"]
    name: Text = ""
    range_yds: OptFloat = None


class ClaimOwner(_Payload):
    type: Literal["session:claimOwner"]
    session_id: Text = ""
    owner_token: Text = ""


class JoinSession(_Payload):
    type: Literal["session:join"]
    session_id: Text = ""
    callsign: Text = ""


class SetRange(_Payload):
    type: Literal["session:setRange"]
    session_id: Text = ""
    range_yds: OptFloat = None


class PauseSession(_Payload):
    type: Literal["session:pause"]
    session_id: Text = ""
    paused: Flag = False


class StartScenario(_Payload):
    type: Literal["session:start"]
    session_id: Text = ""
    placements: Annotated[list[Placement], BeforeValidator(_lenient_list)] = Field(default_factory=list)
    npcs: Annotated[list[NpcSpec], BeforeValidator(_lenient_list)] = Field(default_factory=list)


class SetPlayerNav(_Payload):
    type: Literal["player:setNav"]
    course_deg: OptFloat = None
    speed_kts: OptFloat = None


class SetNpcNav(_Payload):
    type: Literal["npc:setNav"]
    session_id: Text = ""
    npc_id: Text = ""
    course_deg: OptFloat = None
    speed_kts: OptFloat = None


class AddNpc(_Payload):
    type: Literal["scenario:addNpc"]
    session_id: Text = ""
    callsign: Text = ""
    x: OptFloat = None
    y: OptFloat = None
    course_deg: OptFloat = None
    speed_kts: OptFloat = None
    delay_sec: OptFloat = None


class ClearScenario(_Payload):
    type: Literal["scenario:clear"]
    session_id: Text = ""


class RecordSession(_Payload):
    type: Literal["session:record"]
    session_id: Text = ""
    on: Flag = False


Command = Annotated[
    Union[
        CreateSession,
        ClaimOwner,
        JoinSession,
        SetRange,
        PauseSession,
        StartScenario,
        SetPlayerNav,
        SetNpcNav,
        AddNpc,
        ClearScenario,
        RecordSession,
    ],
    Field(discriminator="type"),
]

_COMMAND_ADAPTER: TypeAdapter[Command] = TypeAdapter(Command)


def parse_command(message: Any) -> Command:
    """Validate a decoded JSON message.  Raises ExerciseError(BAD_REQUEST)."""
    try:
        return _COMMAND_ADAPTER.validate_python(message)
    except ValidationError as e:
        msg_type = message.get("type") if isinstance(message, dict) else None
        raise ExerciseError(ErrorCode.BAD_REQUEST, f"{msg_type!r}: {e.error_count()} error(s)") from e


def dispatch(engine: ExerciseEngine, conn_id: str, message: Any) -> dict | None:
    """Run one client message against the engine and return its acknowledgment.

    Returns None for messages that are never acknowledged (``player:setNav``).
    Refusals come back as ``{"ok": False, "error": <code>}``; nothing raises.
    """
    try:
        command = parse_command(message)
        return _route(engine, conn_id, command)
    except ExerciseError as e:
        if e.code is ErrorCode.BAD_REQUEST:
            logger.warning(f"Rejected message from {conn_id}: {e.detail}")
        return {"ok": False, "error": e.code.value}


def _route(engine: ExerciseEngine, conn_id: str, command: Command) -> dict | None:
    if isinstance(command, CreateSession):
        return engine.create_session(command.name, command.range_yds)
    if isinstance(command, ClaimOwner):
        return engine.claim_owner(conn_id, command.session_id, command.owner_token)
    if isinstance(command, JoinSession):
        return engine.join(conn_id, command.session_id, command.callsign)
    if isinstance(command, SetRange):
        return engine.set_range(conn_id, command.session_id, command.range_yds)
    if isinstance(command, PauseSession):
        return engine.set_paused(conn_id, command.session_id, command.paused)
    if isinstance(command, StartScenario):
        return engine.start_scenario(conn_id, command.session_id, command.placements, command.npcs)
    if isinstance(command, SetPlayerNav):
        engine.set_player_nav(conn_id, command.course_deg, command.speed_kts)
        return None
    if isinstance(command, SetNpcNav):
        return engine.set_npc_nav(
            conn_id, command.session_id, command.npc_id, command.course_deg, command.speed_kts,
        )
    if isinstance(command, AddNpc):
        return engine.add_npc(
            conn_id,
            command.session_id,
            command.callsign,
            command.x,
            command.y,
            command.course_deg,
            command.speed_kts,
            command.delay_sec,
        )
    if isinstance(command, ClearScenario):
        return engine.clear_scenario(conn_id, command.session_id)
    if isinstance(command, RecordSession):
        return engine.set_recording(conn_id, command.session_id, command.on)
    raise ExerciseError(ErrorCode.BAD_REQUEST, type(command).__name__)
