"""Session snapshot routes."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request

from ..session import SessionAggregator

router = APIRouter(prefix="/api", tags=["sessions"])


async def get_aggregator(request: Request) -> SessionAggregator:
    """Dependency returning the app's live aggregator."""
    return request.app.state.aggregator


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/sessions")
async def list_sessions(
    include_archived: bool = False,
    aggregator: SessionAggregator = Depends(get_aggregator),
):
    """List sessions currently shown on the HUD.

    Args:
        include_archived: Return every tracked session, archived ones included

    Returns:
        Sessions (oldest first) and an ISO timestamp
    """
    sessions = aggregator.sessions if include_archived else aggregator.visible_sessions()
    return {
        'sessions': [s.to_dict() for s in sessions],
        'timestamp': _now_iso(),
    }


@router.get("/sessions/archived")
async def list_archived_sessions(aggregator: SessionAggregator = Depends(get_aggregator)):
    """List sessions that exited more than the grace period ago."""
    return {
        'sessions': [s.to_dict() for s in aggregator.archived_sessions()],
        'timestamp': _now_iso(),
    }


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, aggregator: SessionAggregator = Depends(get_aggregator)):
    session = aggregator.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session.to_dict()


@router.get("/sessions/{session_id}/activity")
async def get_session_activity(session_id: str, aggregator: SessionAggregator = Depends(get_aggregator)):
    """Get the activity log of one session, oldest entry first."""
    log = aggregator.activity_log(session_id)
    if log is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return {
        'sessionId': session_id,
        'entries': [entry.to_dict() for entry in log],
        'count': len(log),
    }


@router.get("/snapshot")
async def get_snapshot(aggregator: SessionAggregator = Depends(get_aggregator)):
    """Full state: every session plus every activity log."""
    return aggregator.snapshot()
