"""FastAPI API endpoints under /api.

Endpoint groups: settings (health + global config), sessions (start/resume,
apply a choice, skill profile), story (offline validation report).

Open sessions live in app.state.sessions (a SessionRegistry bounded by
sessions.max_open), keyed by user id, and share the
key-value store in app.state.kv.
"""

from fastapi import APIRouter

from .sessions import router as sessions_router
from .settings import router as settings_router
from .story import router as story_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(sessions_router)
router.include_router(story_router)
