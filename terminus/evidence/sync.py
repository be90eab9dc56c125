"""Outbound sync events.

The engine emits two kinds of event into a SyncSink; flushing them to a
remote system is the sink's business.

  choice_recorded  — once per choice that produced a demonstration
  skill_summary    — per skill whose demonstration count just reached a
                     multiple of `skill_summary_every` (default 3)
"""

from datetime import datetime, timezone
from typing import Any, Literal, Protocol

from pydantic import BaseModel

from terminus.models import SkillDemonstration

from .store import EvidenceStore

SKILL_SUMMARY_EVERY = 3


class SyncEvent(BaseModel):
    user_id: str
    kind: Literal["skill_summary", "choice_recorded"]
    payload: dict[str, Any]
    timestamp: datetime


class SyncSink(Protocol):
    def emit(self, event: SyncEvent) -> None: ...


class MemorySyncQueue:
    """Holds events until drained."""

    def __init__(self) -> None:
        self.events: list[SyncEvent] = []

    def emit(self, event: SyncEvent) -> None:
        self.events.append(event)

    def drain(self) -> list[SyncEvent]:
        events, self.events = self.events, []
        return events


def choice_recorded_event(
    user_id: str,
    choice_id: str,
    demo: SkillDemonstration,
    now: datetime | None = None,
) -> SyncEvent:
    return SyncEvent(
        user_id=user_id,
        kind="choice_recorded",
        payload={
            "scene_id": demo.scene_id,
            "choice_id": choice_id,
            "choice_text": demo.choice_text,
            "skills": list(demo.skills),
        },
        timestamp=now or datetime.now(timezone.utc),
    )


def skill_summary_events(
    store: EvidenceStore,
    skills: list[str],
    every: int = SKILL_SUMMARY_EVERY,
    now: datetime | None = None,
) -> list[SyncEvent]:
    """Summaries for `skills` whose count in `store` is now a multiple of `every`."""
    now = now or datetime.now(timezone.utc)
    grouped = store.by_skill()
    events = []
    for skill in skills:
        demos = grouped.get(skill, [])
        if not demos or every <= 0 or len(demos) % every != 0:
            continue
        latest = demos[-1]
        scenes = list(dict.fromkeys(d.scene_id for d in demos))
        events.append(SyncEvent(
            user_id=store.user_id,
            kind="skill_summary",
            payload={
                "skill_name": skill,
                "demonstration_count": len(demos),
                "latest_justification": latest.justification,
                "scenes_involved": scenes,
                "last_demonstrated": latest.timestamp.isoformat(),
            },
            timestamp=now,
        ))
    return events
