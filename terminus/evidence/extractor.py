"""Evidence extractor: turns one applied choice into skill demonstrations.

Priority (first match wins, no blending):
  1. Authored exact match  — scene map entry keyed by choice_id.
  2. Authored fuzzy match  — substring match between the choice text and
                             the scene's choice keys (legacy content only).
  3. Pattern fallback      — only when the scene has no authored map:
                             PATTERN_SKILLS[choice.pattern] ∪ choice.skills.
                             Unknown patterns yield nothing and log a
                             content warning.
  4. Keyword augmentation  — always: KEYWORD_SKILLS matched against the
                             choice text (and the scene id for regional
                             keywords), unioned into the result.

Authored justifications are used verbatim. Otherwise the justification is
rendered from the configured Handlebars template.

The extractor is pure: it reads the choice, scene, session state and the
scene-skill map, and returns new SkillDemonstration objects. It never
touches the evidence store.
"""

import logging
import re
from datetime import datetime, timezone

from terminus.justifications import (
    TemplateError,
    build_justification_context,
    fallback_justification,
    render_template,
)
from terminus.models import (
    Choice,
    ChoiceSkillMapping,
    Intensity,
    SceneSkillMapping,
    SessionState,
    SkillDemonstration,
)
from terminus.storage.config import DEFAULT_JUSTIFICATION_TEMPLATE

logger = logging.getLogger(__name__)

PATTERN_SKILLS: dict[str, list[str]] = {
    "helping": ["emotionalIntelligence", "collaboration", "communication"],
    "analytical": ["criticalThinking", "problemSolving", "digitalLiteracy"],
    "building": ["creativity", "problemSolving", "leadership"],
    "patience": ["timeManagement", "adaptability", "emotionalIntelligence"],
    "exploring": ["adaptability", "creativity", "criticalThinking"],
}

# (skill, word prefixes). A prefix matches at a word boundary, so "lead"
# matches "leading" but not "mislead".
KEYWORD_SKILLS: list[tuple[str, tuple[str, ...]]] = [
    ("financialLiteracy", ("salary", "cost", "budget", "money")),
    ("leadership", ("lead", "guide", "inspire", "organize", "organise")),
    ("digitalLiteracy", ("robot", "data", "tech", "digital")),
    ("communication", ("explain", "tell", "share", "discuss")),
    ("collaboration", ("together", "team", "help")),
]

REGIONAL_KEYWORDS = ("birmingham",)
REGIONAL_SKILL = "culturalCompetence"

_KEYWORD_PATTERNS = [
    (skill, re.compile(r"\b(?:" + "|".join(prefixes) + r")", re.IGNORECASE))
    for skill, prefixes in KEYWORD_SKILLS
]


def normalize_skill(tag: str) -> str:
    """"emotional_intelligence" → "emotionalIntelligence"; camelCase passes through."""
    head, *rest = tag.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _union(*groups: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for group in groups:
        for skill in group:
            seen.setdefault(skill, None)
    return list(seen)


def find_choice_mapping(mapping: SceneSkillMapping, choice: Choice) -> ChoiceSkillMapping | None:
    """Exact choice_id match first, then the legacy substring match on text."""
    exact = mapping.choices.get(choice.choice_id)
    if exact is not None:
        return exact

    text = choice.text.lower().strip()
    if not text:
        return None
    head = text[:20]
    for key, entry in mapping.choices.items():
        k = key.lower()
        if k in text or k.replace("_", " ") in text or head in k:
            logger.debug("Fuzzy-matched choice %r to mapping key %r", choice.choice_id, key)
            return entry
    return None


def pattern_skills(choice: Choice) -> list[str]:
    """Skills implied by the choice's trait pattern plus its declared skills."""
    skills: list[str] = []
    if choice.pattern is not None:
        if choice.pattern in PATTERN_SKILLS:
            skills.extend(PATTERN_SKILLS[choice.pattern])
        else:
            logger.warning(
                "Unknown pattern %r on choice %r (%r), no pattern skills recorded",
                choice.pattern, choice.choice_id, choice.text,
            )
    skills.extend(normalize_skill(s) for s in choice.skills)
    return _union(skills)


def keyword_skills(scene_id: str, text: str) -> list[str]:
    skills = [skill for skill, pattern in _KEYWORD_PATTERNS if pattern.search(text)]
    lowered = f"{scene_id} {text}".lower()
    if any(word in lowered for word in REGIONAL_KEYWORDS):
        skills.append(REGIONAL_SKILL)
    return skills


def describe_scene(scene_id: str, skill_map: dict[str, SceneSkillMapping]) -> str:
    mapping = skill_map.get(scene_id)
    if mapping is not None:
        return mapping.scene_description
    return scene_id.replace("_", " ").capitalize()


def extract_demonstrations(
    choice: Choice,
    scene_id: str,
    state: SessionState,
    skill_map: dict[str, SceneSkillMapping],
    *,
    template: str = DEFAULT_JUSTIFICATION_TEMPLATE,
    now: datetime | None = None,
) -> list[SkillDemonstration]:
    """Return zero or one demonstration for `choice` taken in `scene_id`."""
    mapping = skill_map.get(scene_id)
    authored: ChoiceSkillMapping | None = None
    if mapping is not None:
        authored = find_choice_mapping(mapping, choice)
        base = list(authored.skills) if authored is not None else []
    else:
        base = pattern_skills(choice)

    skills = _union(base, keyword_skills(scene_id, choice.text))
    if not skills:
        return []

    scene_description = describe_scene(scene_id, skill_map)
    intensity: Intensity | None = None
    if authored is not None:
        justification = authored.justification
        intensity = authored.intensity
    else:
        arc = mapping.character_arc if mapping else scene_id.split("_", 1)[0]
        char = state.characters.get(arc)
        ctx = build_justification_context(
            choice_text=choice.text,
            scene_description=scene_description,
            pattern=choice.pattern,
            character_arc=arc,
            trust=char.trust if char else 0,
            skills=skills,
            choice_count=len(state.choice_history),
        )
        try:
            justification = render_template(template, ctx)
        except TemplateError as e:
            logger.warning("Justification template failed, using plain text: %s", e)
            justification = fallback_justification(ctx)

    return [SkillDemonstration(
        scene_id=scene_id,
        scene_description=scene_description,
        choice_text=choice.text,
        skills=skills,
        justification=justification,
        timestamp=now or datetime.now(timezone.utc),
        intensity=intensity,
    )]
