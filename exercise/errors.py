"""Error taxonomy for exercise operations.

Codes travel to clients inside acknowledgments (``{"ok": false, "error":
code}``).  Inside the core they are raised as ``ExerciseError`` and caught
only by the command dispatcher.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    NOT_OWNER = "NOT_OWNER"
    BAD_TOKEN = "BAD_TOKEN"
    CALLSIGN_TAKEN = "CALLSIGN_TAKEN"
    NPC_NOT_FOUND = "NPC_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"
    BAD_REQUEST = "BAD_REQUEST"


class ExerciseError(Exception):
    """An operation was refused; ``code`` says why."""

    def __init__(self, code: ErrorCode, detail: str = "") -> None:
        super().__init__(detail or code.value)
        self.code = code
        self.detail = detail
