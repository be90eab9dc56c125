"""Session endpoints: start/resume, current node, apply choice, skill profile."""

from fastapi import APIRouter, HTTPException, Request

from terminus.session import GameSession, SessionRegistry, session_key
from terminus.traversal import IllegalChoice

from .models import ChoiceBody, StartSessionBody

router = APIRouter()


def _get_session(request: Request, user_id: str) -> GameSession:
    """Open session from the registry, resuming a saved one if needed."""
    sessions: SessionRegistry = request.app.state.sessions
    session = sessions.get(user_id)
    if session is not None:
        return session
    kv = request.app.state.kv
    if kv.load(session_key(user_id)) is None:
        raise HTTPException(404, "Session not found")
    session = GameSession.open(user_id, kv)
    sessions.add(session)
    return session


@router.post("/sessions")
async def start_session(request: Request, body: StartSessionBody):
    """Start a new session at the safe start, or resume a saved one."""
    sessions: SessionRegistry = request.app.state.sessions
    session = sessions.get(body.user_id)
    if session is None:
        session = GameSession.open(body.user_id, request.app.state.kv)
        sessions.add(session)
    return session.view().model_dump()


@router.get("/sessions/{user_id}")
async def get_session(request: Request, user_id: str):
    """Get the active node view for a session."""
    return _get_session(request, user_id).view().model_dump()


@router.post("/sessions/{user_id}/choices")
async def choose(request: Request, user_id: str, body: ChoiceBody):
    """Apply a choice. 409 if it is not currently available."""
    session = _get_session(request, user_id)
    try:
        outcome = session.choose(body.choice_id)
    except IllegalChoice as e:
        raise HTTPException(409, str(e))
    return {
        "node": session.view().model_dump(),
        "demonstrations": [d.model_dump(mode="json") for d in outcome.demonstrations],
        "milestone": outcome.milestone.model_dump(mode="json") if outcome.milestone else None,
        "warning": outcome.warning.model_dump() if outcome.warning else None,
    }


@router.get("/sessions/{user_id}/profile")
async def get_profile(request: Request, user_id: str):
    """Read-only skill profile: evidence by skill, career matches, milestones."""
    return _get_session(request, user_id).profile().model_dump(mode="json")
