"""Career matching engine.

Reads the evidence store's aggregate, never mutates it.

Internal skill level per tag = min(1.0, count × skill_increment). The
number itself is never shown to the player; only gaps, readiness tiers and
evidence strings leave this module.

  match_score = mean level over the path's required skills
                (a skill never demonstrated counts as missing_skill_default)
  avg_gap     = mean of max(0, required - current) over required skills
  readiness   = near_ready  if avg_gap < near_ready_gap
                developing  if avg_gap < developing_gap
                exploring   otherwise

Evidence strings are rendered only for required skills that have at least
one real demonstration behind them.
"""

import logging
from typing import Any

from pydantic import BaseModel

from terminus.justifications import (
    TemplateError,
    format_skill_name,
    render_template,
)
from terminus.models import (
    CareerMatch,
    CareerPath,
    Readiness,
    SkillDemonstration,
    SkillGap,
)
from terminus.storage.config import DEFAULT_CAREER_EVIDENCE_TEMPLATE

logger = logging.getLogger(__name__)


class MatchingPolicy(BaseModel):
    skill_increment: float = 0.03
    missing_skill_default: float = 0.5
    near_ready_gap: float = 0.10
    developing_gap: float = 0.20
    top_n: int = 6

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "MatchingPolicy":
        return cls(**config.get("matching", {}))


def internal_skill_levels(
    grouped: dict[str, list[SkillDemonstration]], increment: float
) -> dict[str, float]:
    return {skill: min(1.0, len(demos) * increment) for skill, demos in grouped.items()}


def readiness_for(avg_gap: float, policy: MatchingPolicy) -> Readiness:
    if avg_gap < policy.near_ready_gap:
        return "near_ready"
    if avg_gap < policy.developing_gap:
        return "developing"
    return "exploring"


def evidence_strings(
    path: CareerPath,
    grouped: dict[str, list[SkillDemonstration]],
    template: str = DEFAULT_CAREER_EVIDENCE_TEMPLATE,
) -> list[str]:
    """One line per required skill that was actually demonstrated."""
    lines = []
    for skill in path.required_skills:
        demos = grouped.get(skill)
        if not demos:
            continue
        latest = demos[-1]
        ctx = {
            "skill": format_skill_name(skill),
            "count": len(demos),
            "plural": len(demos) != 1,
            "choice": latest.choice_text,
            "scene": latest.scene_description,
        }
        try:
            lines.append(render_template(template, ctx))
        except TemplateError as e:
            logger.warning("Career evidence template failed: %s", e)
            lines.append(f'Demonstrated {ctx["skill"]} {ctx["count"]}x, most recently: "{ctx["choice"]}"')
    return lines


def match_career(
    path: CareerPath,
    grouped: dict[str, list[SkillDemonstration]],
    policy: MatchingPolicy,
    template: str = DEFAULT_CAREER_EVIDENCE_TEMPLATE,
) -> CareerMatch:
    levels = internal_skill_levels(grouped, policy.skill_increment)
    gaps: dict[str, SkillGap] = {}
    for skill, required in path.required_skills.items():
        current = levels.get(skill, policy.missing_skill_default)
        gaps[skill] = SkillGap(
            current=current, required=required, gap=max(0.0, required - current)
        )

    if gaps:
        score = sum(g.current for g in gaps.values()) / len(gaps)
        avg_gap = sum(g.gap for g in gaps.values()) / len(gaps)
    else:
        score, avg_gap = 0.0, 0.0

    return CareerMatch(
        path_id=path.id,
        name=path.name,
        match_score=score,
        required_skills=gaps,
        readiness=readiness_for(avg_gap, policy),
        evidence=evidence_strings(path, grouped, template),
        salary_range=path.salary_range,
        education_paths=path.education_paths,
        local_opportunities=path.local_opportunities,
    )


def rank_careers(
    paths: list[CareerPath],
    grouped: dict[str, list[SkillDemonstration]],
    policy: MatchingPolicy | None = None,
    template: str = DEFAULT_CAREER_EVIDENCE_TEMPLATE,
) -> list[CareerMatch]:
    """Top N matches by score; ties keep declaration order."""
    policy = policy or MatchingPolicy()
    matches = [match_career(p, grouped, policy, template) for p in paths]
    # sorted() is stable, so equal scores stay in declaration order
    ranked = sorted(matches, key=lambda m: m.match_score, reverse=True)
    return ranked[: policy.top_n]
