"""One player's session: traversal, evidence and persistence wired together.

GameSession.choose(choice_id) runs one step:
  1. TraversalEngine.apply_choice     — raises IllegalChoice / UnknownChoice
  2. extract_demonstrations           — from the source scene
  3. EvidenceStore.append + milestone — retention enforced on append
  4. sync events                      — choice_recorded, skill_summary
  5. save                             — session state + evidence log

Everything up to step 5 is in-memory, so an abandoned step leaves the
session as of the last completed choice. Save problems come back as a
PersistenceFailure on the outcome; the narrative carries on regardless.

Sentinel targets (e.g. TRAVEL_TO_HUB) are routed to the story's safe start.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ValidationError

from terminus import storage
from terminus.careers import MatchingPolicy, rank_careers
from terminus.evidence import (
    EvidenceStore,
    MemorySyncQueue,
    RetentionPolicy,
    SyncEvent,
    SyncSink,
    choice_recorded_event,
    extract_demonstrations,
    skill_summary_events,
)
from terminus.graph import StoryGraph
from terminus.models import (
    CareerPath,
    FallbackReason,
    PersistenceFailure,
    SceneSkillMapping,
    SessionState,
    SkillDemonstration,
    SkillMilestone,
    SkillProfile,
)
from terminus.state import new_session_state
from terminus.storage.kv import KeyValueStore
from terminus.traversal import Transition, TraversalEngine

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session_"
MAX_OPEN_SESSIONS = 256


class ChoiceView(BaseModel):
    choice_id: str
    text: str
    pattern: str | None = None
    enabled: bool = True
    reason: str | None = None
    preview: str | None = None


class NodeView(BaseModel):
    """What the UI needs to render the active node."""

    user_id: str
    node_id: str
    speaker: str
    text: str
    emotion: str | None = None
    variation_id: str
    choices: list[ChoiceView]
    fallback_reason: FallbackReason | None = None
    intended_target: str | None = None
    external_target: str | None = None


class ChoiceOutcome(BaseModel):
    transition: Transition
    demonstrations: list[SkillDemonstration]
    milestone: SkillMilestone | None = None
    sync_events: list[SyncEvent]
    warning: PersistenceFailure | None = None


def session_key(user_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{user_id}"


class GameSession:
    def __init__(
        self,
        state: SessionState,
        *,
        kv: KeyValueStore,
        story: StoryGraph,
        skill_map: dict[str, SceneSkillMapping],
        careers: list[CareerPath],
        config: dict[str, Any],
        store: EvidenceStore | None = None,
        sink: SyncSink | None = None,
    ) -> None:
        self.state = state
        self.kv = kv
        self.story = story
        self.skill_map = skill_map
        self.careers = careers
        self.config = config
        relationships = config.get("relationships", {})
        self.engine = TraversalEngine(
            story,
            min_trust=relationships.get("min_trust", 0),
            max_trust=relationships.get("max_trust", 10),
        )
        self.store = store or EvidenceStore(
            state.user_id, kv, RetentionPolicy.from_config(config)
        )
        self.sink = sink or MemorySyncQueue()
        self.last: Transition | None = None

    @property
    def user_id(self) -> str:
        return self.state.user_id

    @classmethod
    def open(
        cls,
        user_id: str,
        kv: KeyValueStore,
        *,
        story: StoryGraph | None = None,
        skill_map: dict[str, SceneSkillMapping] | None = None,
        careers: list[CareerPath] | None = None,
        config: dict[str, Any] | None = None,
        sink: SyncSink | None = None,
    ) -> "GameSession":
        """Resume the player's saved session, or start a new one at the safe start.

        Presets and config default to the initialised storage.
        """
        story = story or storage.get_story()
        config = config or storage.get_config()
        store = EvidenceStore.load(user_id, kv, RetentionPolicy.from_config(config))

        state = None
        blob = kv.load(session_key(user_id))
        if blob is not None:
            try:
                state = SessionState.model_validate_json(blob)
            except ValidationError as e:
                logger.warning("Discarding session state for %s: %s", user_id, e)

        session = cls(
            state or new_session_state(user_id, story.start_node_id),
            kv=kv,
            story=story,
            skill_map=skill_map if skill_map is not None else storage.get_scene_skill_map(),
            careers=careers if careers is not None else storage.get_career_paths(),
            config=config,
            store=store,
            sink=sink,
        )
        if state is None:
            session.last = session.engine.start(session.state)
            session.state = session.last.state
            session.save()
        return session

    # ── Views ────────────────────────────────────────────

    def view(self) -> NodeView:
        node = self.engine.current_node(self.state)
        content = self.engine.current_content(self.state)
        choices = [
            ChoiceView(
                choice_id=ec.choice.choice_id,
                text=ec.choice.text,
                pattern=ec.choice.pattern,
                enabled=ec.enabled,
                reason=ec.reason,
                preview=ec.choice.preview,
            )
            for ec in self.engine.evaluate_choices(node, self.state)
            if ec.visible
        ]
        last = self.last
        return NodeView(
            user_id=self.user_id,
            node_id=node.node_id,
            speaker=node.speaker,
            text=content.text,
            emotion=content.emotion,
            variation_id=content.variation_id,
            choices=choices,
            fallback_reason=last.fallback_reason if last else None,
            intended_target=last.intended_target if last else None,
            external_target=last.external_target if last else None,
        )

    def profile(self) -> SkillProfile:
        grouped = self.store.by_skill()
        matches = rank_careers(
            self.careers,
            grouped,
            MatchingPolicy.from_config(self.config),
            self.config["templates"]["career_evidence"],
        )
        return SkillProfile(
            skill_demonstrations=grouped,
            career_matches=matches,
            milestones=list(self.store.milestones),
            total_demonstrations=self.store.total,
            journey_started=self.store.journey_started,
        )

    # ── Stepping ─────────────────────────────────────────

    def _route_external(self, transition: Transition) -> Transition:
        """Send a sentinel hand-off to the story's safe start."""
        hub_state = transition.state.model_copy(
            update={"current_node_id": self.story.start_node_id}
        )
        entered = self.engine.start(hub_state)
        return transition.model_copy(
            update={"state": entered.state, "node": entered.node, "content": entered.content}
        )

    def choose(self, choice_id: str, now: datetime | None = None) -> ChoiceOutcome:
        """Apply one choice. Raises IllegalChoice if it is not available."""
        choice = self.engine.find_choice(self.state, choice_id)
        transition = self.engine.apply_choice(choice, self.state, now)
        if transition.external_target is not None:
            transition = self._route_external(transition)

        demos = extract_demonstrations(
            choice,
            transition.source_node_id,
            transition.state,
            self.skill_map,
            template=self.config["templates"]["justification"],
            now=now,
        )

        self.state = transition.state
        self.last = transition
        self.store.append(demos, now)
        milestone = self.store.record_milestone(len(self.state.choice_history), now)

        every = self.config.get("sync", {}).get("skill_summary_every", 3)
        events: list[SyncEvent] = []
        for demo in demos:
            events.append(choice_recorded_event(self.user_id, choice.choice_id, demo, now))
            events.extend(skill_summary_events(self.store, demo.skills, every, now))
        for event in events:
            self.sink.emit(event)

        logger.debug(
            "%s chose %s/%s → %s (%d demonstrations)",
            self.user_id, transition.source_node_id, choice.choice_id,
            self.state.current_node_id, len(demos),
        )
        return ChoiceOutcome(
            transition=transition,
            demonstrations=demos,
            milestone=milestone,
            sync_events=events,
            warning=self.save(),
        )

    def save(self) -> PersistenceFailure | None:
        """Persist session state and evidence. Never raises for storage problems."""
        key = session_key(self.user_id)
        state_saved = self.kv.save(key, self.state.model_dump_json())
        failure = self.store.save()
        if failure is None and not state_saved:
            logger.error("Could not persist %s", key)
            failure = PersistenceFailure(
                key=key,
                message="Story progress could not be saved; it is kept for this session only",
                consecutive_failures=1,
                size=len(self.state.model_dump_json()),
            )
        return failure


class SessionRegistry:
    """Open sessions by user id; the least recently used is evicted past `max_open`.

    Choices are saved as they are applied, so an evicted session resumes from
    the key-value store on its next request.
    """

    def __init__(self, max_open: int = MAX_OPEN_SESSIONS) -> None:
        self.max_open = max_open
        self._sessions: OrderedDict[str, GameSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    def get(self, user_id: str) -> GameSession | None:
        session = self._sessions.get(user_id)
        if session is not None:
            self._sessions.move_to_end(user_id)
        return session

    def add(self, session: GameSession) -> None:
        self._sessions[session.user_id] = session
        self._sessions.move_to_end(session.user_id)
        while len(self._sessions) > max(self.max_open, 1):
            user_id, evicted = self._sessions.popitem(last=False)
            failure = evicted.save()
            if failure is not None:
                logger.warning("Evicted session %s with unsaved progress: %s", user_id, failure.message)
            else:
                logger.debug("Evicted session %s", user_id)
