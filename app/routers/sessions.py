"""Session status and AAR export API."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from exercise.errors import ExerciseError

router = APIRouter(prefix="/api", tags=["sessions"])


def _get_engine(request: Request):
    """Retrieve the ExerciseEngine from app state."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(503, "Exercise engine not available")
    return engine


@router.get("/sessions")
async def list_sessions(request: Request):
    """Public view of every live session."""
    engine = _get_engine(request)
    return {"sessions": engine.list_sessions()}


@router.get("/sessions/{session_id}")
async def get_snapshot(session_id: str, request: Request):
    """Current snapshot of one session (same payload as ``state:snapshot``)."""
    engine = _get_engine(request)
    try:
        return engine.snapshot(session_id)
    except ExerciseError as e:
        raise HTTPException(404, e.code.value)


@router.get("/sessions/{session_id}/recording.csv")
async def export_recording(session_id: str, request: Request):
    """Recorded ticks as CSV, one row per track per tick."""
    engine = _get_engine(request)
    try:
        csv_text = engine.export_recording(session_id)
    except ExerciseError as e:
        raise HTTPException(404, e.code.value)
    if csv_text is None:
        raise HTTPException(404, "NO_RECORDING")
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{session_id}-aar.csv"'},
    )
