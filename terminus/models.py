"""Core domain models.

Every engine stage and storage function operates on these types.
Pydantic is used for validation and serialisation at every data boundary:
authored JSON presets, persisted blobs, and HTTP bodies.

Optional fields are always "no constraint" / "no effect" when absent.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

RelationshipStatus = Literal["stranger", "acquaintance", "confidant"]

Intensity = Literal["high", "medium", "low"]

Readiness = Literal["near_ready", "developing", "exploring"]

FallbackReason = Literal["unresolved_target", "gated"]

# Fixed trait vocabulary. Choice.pattern is a plain str so that authoring
# defects load and get reported instead of failing validation.
PATTERNS = ("analytical", "helping", "building", "patience", "exploring")


# ---------------------------------------------------------------------------
# Gating and effects
# ---------------------------------------------------------------------------

class Range(BaseModel):
    min: int | None = None
    max: int | None = None


class StateCondition(BaseModel):
    """A gate on a node or choice. Every absent field passes."""

    character_id: str | None = None  # defaults to the owning node's character
    trust: Range | None = None
    relationship: list[RelationshipStatus] | None = None
    has_knowledge_flags: list[str] | None = None
    lacks_knowledge_flags: list[str] | None = None
    has_global_flags: list[str] | None = None
    lacks_global_flags: list[str] | None = None
    patterns: dict[str, Range] | None = None


class StateChange(BaseModel):
    """An explicit state delta applied by a choice or a node's on_enter."""

    character_id: str | None = None
    trust_change: int | None = None
    set_relationship_status: RelationshipStatus | None = None
    add_knowledge_flags: list[str] | None = None
    remove_knowledge_flags: list[str] | None = None
    add_global_flags: list[str] | None = None
    remove_global_flags: list[str] | None = None
    pattern_changes: dict[str, int] | None = None


# ---------------------------------------------------------------------------
# Dialogue graph
# ---------------------------------------------------------------------------

class DialogueContent(BaseModel):
    text: str
    emotion: str | None = None
    variation_id: str = "default"


class Choice(BaseModel):
    choice_id: str
    text: str
    next_node_id: str
    pattern: str | None = None
    skills: list[str] = Field(default_factory=list)
    consequence: StateChange | None = None
    visible_condition: StateCondition | None = None
    enabled_condition: StateCondition | None = None
    preview: str | None = None


class DialogueNode(BaseModel):
    node_id: str
    speaker: str
    content: list[DialogueContent] = Field(default_factory=list)
    character_id: str | None = None  # defaults to the node_id prefix
    required_state: StateCondition | None = None
    choices: list[Choice] = Field(default_factory=list)
    on_enter: list[StateChange] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @property
    def namespace(self) -> str:
        """Character namespace, e.g. "maya" for "maya_robotics_passion"."""
        if self.character_id:
            return self.character_id
        return self.node_id.split("_", 1)[0]


class DialogueGraph(BaseModel):
    """One authored graph file (usually one character's arc)."""

    key: str
    title: str = ""
    start_node_id: str
    nodes: list[DialogueNode]


class StoryManifest(BaseModel):
    """presets/story.json — which graphs make up the story."""

    graphs: list[str]
    start_node_id: str
    sentinels: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------

class CharacterState(BaseModel):
    character_id: str
    trust: int = 0
    relationship_status: RelationshipStatus = "stranger"
    knowledge_flags: set[str] = Field(default_factory=set)
    conversation_history: list[str] = Field(default_factory=list)


class ChoiceRecord(BaseModel):
    node_id: str
    choice_id: str
    text: str
    pattern: str | None = None
    timestamp: datetime


class SessionState(BaseModel):
    """Per-player narrative state. Replaced wholesale on every step."""

    user_id: str
    current_node_id: str
    global_flags: set[str] = Field(default_factory=set)
    characters: dict[str, CharacterState] = Field(default_factory=dict)
    patterns: dict[str, int] = Field(
        default_factory=lambda: {p: 0 for p in PATTERNS}
    )
    choice_history: list[ChoiceRecord] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------

class ChoiceSkillMapping(BaseModel):
    skills: list[str]
    justification: str
    intensity: Intensity = "medium"


class SceneSkillMapping(BaseModel):
    scene_id: str
    character_arc: str
    scene_description: str
    choices: dict[str, ChoiceSkillMapping]


class SkillDemonstration(BaseModel):
    """One append-only evidence entry. Never updated in place."""

    scene_id: str
    scene_description: str
    choice_text: str
    skills: list[str]
    justification: str
    timestamp: datetime
    intensity: Intensity | None = None


class SkillMilestone(BaseModel):
    checkpoint: str
    total_choices: int
    demonstration_count: int
    timestamp: datetime


class PersistenceFailure(BaseModel):
    """Returned (not raised) when a save failed even after cleanup + retry."""

    key: str
    message: str
    consecutive_failures: int
    size: int


# ---------------------------------------------------------------------------
# Careers
# ---------------------------------------------------------------------------

class CareerPath(BaseModel):
    id: str
    name: str
    description: str = ""
    required_skills: dict[str, float]  # tag -> target level, declaration order kept
    salary_range: tuple[int, int]
    education_paths: list[str] = Field(default_factory=list)
    local_opportunities: list[str] = Field(default_factory=list)
    growth: Literal["high", "medium", "stable"] = "medium"
    regional_relevance: float = 0.5


class SkillGap(BaseModel):
    current: float
    required: float
    gap: float


class CareerMatch(BaseModel):
    path_id: str
    name: str
    match_score: float
    required_skills: dict[str, SkillGap]
    readiness: Readiness
    evidence: list[str]
    salary_range: tuple[int, int]
    education_paths: list[str]
    local_opportunities: list[str]


class SkillProfile(BaseModel):
    """Read-only snapshot handed to dashboards and report generators."""

    skill_demonstrations: dict[str, list[SkillDemonstration]]
    career_matches: list[CareerMatch]
    milestones: list[SkillMilestone]
    total_demonstrations: int
    journey_started: datetime | None = None
