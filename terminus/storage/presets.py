"""Read-only authored data: story graphs, scene-skill map, career paths.

Presets are loaded once per init_storage() and cached; nothing at runtime
writes to them.
"""

import json
from typing import Any

from terminus.graph import StoryGraph, load_story
from terminus.models import CareerPath, SceneSkillMapping

from .core import presets_dir

_story: StoryGraph | None = None
_skill_map: dict[str, SceneSkillMapping] | None = None
_careers: list[CareerPath] | None = None


def reset_cache() -> None:
    global _story, _skill_map, _careers
    _story = None
    _skill_map = None
    _careers = None


def _read(name: str) -> Any:
    return json.loads((presets_dir() / name).read_text())


def get_story() -> StoryGraph:
    """Assemble the story arena from presets/story.json and its graph files."""
    global _story
    if _story is None:
        _story = load_story(presets_dir())
    return _story


def get_scene_skill_map() -> dict[str, SceneSkillMapping]:
    """Scene id → authored mapping. Missing file means no authored scenes."""
    global _skill_map
    if _skill_map is None:
        path = presets_dir() / "scene-skill-map.json"
        if not path.is_file():
            _skill_map = {}
        else:
            raw = _read("scene-skill-map.json")
            _skill_map = {
                scene_id: SceneSkillMapping.model_validate({"scene_id": scene_id, **entry})
                for scene_id, entry in raw.items()
            }
    return _skill_map


def get_career_paths() -> list[CareerPath]:
    """Career paths in declaration order (tie-break order for ranking)."""
    global _careers
    if _careers is None:
        path = presets_dir() / "career-paths.json"
        if not path.is_file():
            _careers = []
        else:
            _careers = [CareerPath.model_validate(c) for c in _read("career-paths.json")]
    return _careers
