"""Story validation endpoint."""

from fastapi import APIRouter

from terminus import storage
from terminus.graph import validate_story

router = APIRouter()


@router.get("/story/validate")
async def validate():
    """Offline validation report for the loaded story presets."""
    issues = validate_story(storage.get_story())
    return {
        "ok": not any(i.level == "error" for i in issues),
        "issues": [i.model_dump() for i in issues],
    }
