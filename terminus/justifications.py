"""Handlebars rendering for generated justifications and career evidence."""

import re
from collections.abc import Callable
from typing import Any

import pybars


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class TemplateError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_template(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise TemplateError(f"Template error: {e}") from e


def format_skill_name(skill: str) -> str:
    """"emotionalIntelligence" → "emotional intelligence"."""
    return re.sub(r"([A-Z])", r" \1", skill).lower().strip()


def journey_stage(choice_count: int) -> str:
    if choice_count <= 5:
        return "Early Journey"
    if choice_count <= 15:
        return "Mid Journey"
    return "Late Journey"


def build_justification_context(
    *,
    choice_text: str,
    scene_description: str,
    pattern: str | None,
    character_arc: str | None,
    trust: int,
    skills: list[str],
    choice_count: int,
) -> dict[str, Any]:
    """Assemble template variables for a generated (non-authored) justification."""
    return {
        "choice": choice_text,
        "scene": scene_description,
        "pattern": pattern or "exploring",
        "arc": character_arc.capitalize() if character_arc else "",
        "relationship": "earning trust" if trust > 5 else "",
        "skills": ", ".join(format_skill_name(s) for s in skills),
        "stage": journey_stage(choice_count),
    }


def fallback_justification(context: dict[str, Any]) -> str:
    """Plain sentence used when a configured template is broken."""
    return (
        f'Chose "{context["choice"]}" during {context["scene"]}, showing a '
        f'{context["pattern"]} approach. Skills in play: {context["skills"]}. '
        f'[{context["stage"]}]'
    )
