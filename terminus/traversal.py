"""Dialogue traversal engine.

Owns the rules for moving one player through the story graph:

  evaluate_choices(node, state)  — every choice with visible/enabled flags
  get_available_choices(...)     — visible and enabled choices, in order
  apply_choice(choice, state)    — validate, apply consequence, resolve the
                                   target (with contextual fallback), enter it
  enter_node(node, state)        — apply on_enter effects, move the pointer

All methods are pure: they take a SessionState and return a new one.

Target resolution when applying a choice:
  1. Sentinel target   → no node; the caller's router takes over.
  2. Missing target    → contextual fallback, reason "unresolved_target".
  3. Gate fails        → contextual fallback, reason "gated".
  4. Otherwise         → the target node.

Contextual fallback walks StoryGraph.fallback_candidates(source) and takes
the first candidate whose required_state passes; if none does, the story's
safe start node. The walk is deterministic.
"""

import logging
from datetime import datetime

from pydantic import BaseModel

from terminus.conditions import describe_failure, evaluate
from terminus.graph import StoryGraph
from terminus.models import (
    PATTERNS,
    Choice,
    DialogueContent,
    DialogueNode,
    FallbackReason,
    SessionState,
    StateChange,
)
from terminus.state import (
    MAX_TRUST,
    MIN_TRUST,
    apply_state_change,
    record_choice,
    record_visit,
)

logger = logging.getLogger(__name__)

MISSING_CONTENT = DialogueContent(text="[Missing content]", variation_id="missing")


class IllegalChoice(ValueError):
    """The choice is not in the active node's currently available set."""


class UnknownChoice(IllegalChoice):
    """The choice id does not exist on the active node at all."""


class EvaluatedChoice(BaseModel):
    choice: Choice
    visible: bool
    enabled: bool
    reason: str | None = None


class Transition(BaseModel):
    """Result of applying one choice."""

    state: SessionState
    node: DialogueNode | None
    content: DialogueContent | None
    source_node_id: str
    intended_target: str
    fallback_reason: FallbackReason | None = None
    external_target: str | None = None


class TraversalEngine:
    def __init__(
        self, story: StoryGraph, *, min_trust: int = MIN_TRUST, max_trust: int = MAX_TRUST
    ) -> None:
        self.story = story
        self.min_trust = min_trust
        self.max_trust = max_trust

    def _apply(self, state: SessionState, change: StateChange, namespace: str) -> SessionState:
        return apply_state_change(
            state, change,
            min_trust=self.min_trust, max_trust=self.max_trust, character_id=namespace,
        )

    # ── Reading ──────────────────────────────────────────

    def current_node(self, state: SessionState) -> DialogueNode:
        """The active node; a pointer that no longer resolves maps to the safe start."""
        node = self.story.get(state.current_node_id)
        if node is None:
            logger.warning(
                "Session %s points at missing node %r, using safe start %r",
                state.user_id, state.current_node_id, self.story.start_node_id,
            )
            return self.story.start_node
        return node

    def evaluate_choices(self, node: DialogueNode, state: SessionState) -> list[EvaluatedChoice]:
        result = []
        for choice in node.choices:
            visible = evaluate(choice.visible_condition, state, node.namespace)
            enabled = visible and evaluate(choice.enabled_condition, state, node.namespace)
            reason = None
            if visible and not enabled:
                reason = describe_failure(choice.enabled_condition, state, node.namespace)
            result.append(EvaluatedChoice(
                choice=choice, visible=visible, enabled=enabled, reason=reason,
            ))
        return result

    def get_available_choices(self, node: DialogueNode, state: SessionState) -> list[Choice]:
        return [ec.choice for ec in self.evaluate_choices(node, state) if ec.enabled]

    def select_content(self, node: DialogueNode, state: SessionState) -> DialogueContent:
        """Rotate through variants by how often the player has seen this node."""
        if not node.content:
            logger.warning("Node %r has no content", node.node_id)
            return MISSING_CONTENT
        char = state.characters.get(node.namespace)
        visits = char.conversation_history.count(node.node_id) if char else 0
        return node.content[visits % len(node.content)]

    def current_content(self, state: SessionState) -> DialogueContent:
        """The variant shown on the latest entry into the active node."""
        node = self.current_node(state)
        if not node.content:
            return MISSING_CONTENT
        char = state.characters.get(node.namespace)
        visits = char.conversation_history.count(node.node_id) if char else 0
        return node.content[max(visits - 1, 0) % len(node.content)]

    # ── Moving ───────────────────────────────────────────

    def enter_node(self, node: DialogueNode, state: SessionState) -> SessionState:
        """Apply on_enter effects and point the session at `node`.

        Runs on every visit, including revisits through cycles.
        """
        new_state = state
        for change in node.on_enter:
            new_state = self._apply(new_state, change, node.namespace)
        if new_state is state:
            new_state = state.model_copy(deep=True)
        new_state.current_node_id = node.node_id
        return new_state

    def start(self, state: SessionState) -> Transition:
        """Enter the state's current node (new session or resumed save)."""
        node = self.current_node(state)
        content = self.select_content(node, state)
        new_state = record_visit(state, node.namespace, node.node_id)
        new_state = self.enter_node(node, new_state)
        return Transition(
            state=new_state, node=node, content=content,
            source_node_id=node.node_id, intended_target=node.node_id,
        )

    def find_choice(self, state: SessionState, choice_id: str) -> Choice:
        """Look up a choice on the active node by id."""
        node = self.current_node(state)
        for choice in node.choices:
            if choice.choice_id == choice_id:
                return choice
        raise UnknownChoice(f"Node {node.node_id!r} has no choice {choice_id!r}")

    def _fallback(self, source: DialogueNode, exclude: str, state: SessionState) -> DialogueNode:
        for candidate in self.story.fallback_candidates(source, exclude=exclude):
            if evaluate(candidate.required_state, state, candidate.namespace):
                return candidate
        return self.story.start_node

    def apply_choice(
        self, choice: Choice, state: SessionState, now: datetime | None = None
    ) -> Transition:
        """Apply `choice` from the active node and return the resulting transition.

        Raises IllegalChoice if the choice is not currently available.
        """
        source = self.current_node(state)
        available = self.get_available_choices(source, state)
        # apply the node's own copy of the choice
        legal = next((c for c in available if c.choice_id == choice.choice_id), None)
        if legal is None:
            raise IllegalChoice(
                f"Choice {choice.choice_id!r} is not available on node {source.node_id!r}"
            )
        choice = legal

        new_state = record_choice(state, source.node_id, choice, now)
        if choice.consequence is not None:
            new_state = self._apply(new_state, choice.consequence, source.namespace)
        if choice.pattern in PATTERNS:
            new_state = self._apply(
                new_state, StateChange(pattern_changes={choice.pattern: 1}), source.namespace
            )

        target_id = choice.next_node_id
        if self.story.is_sentinel(target_id):
            logger.debug("Choice %r hands off to external target %r", choice.choice_id, target_id)
            return Transition(
                state=new_state, node=None, content=None,
                source_node_id=source.node_id, intended_target=target_id,
                external_target=target_id,
            )

        reason: FallbackReason | None = None
        target = self.story.get(target_id)
        if target is None:
            reason = "unresolved_target"
            logger.warning(
                "Unresolved target %r from %s/%s, using contextual fallback",
                target_id, source.node_id, choice.choice_id,
            )
            target = self._fallback(source, target_id, new_state)
        elif not evaluate(target.required_state, new_state, target.namespace):
            reason = "gated"
            logger.warning(
                "Target %r gated shut from %s/%s (%s), using contextual fallback",
                target_id, source.node_id, choice.choice_id,
                describe_failure(target.required_state, new_state, target.namespace),
            )
            target = self._fallback(source, target_id, new_state)

        content = self.select_content(target, new_state)
        new_state = record_visit(new_state, target.namespace, target.node_id)
        new_state = self.enter_node(target, new_state)
        logger.debug("Moved %s → %s", source.node_id, target.node_id)
        return Transition(
            state=new_state, node=target, content=content,
            source_node_id=source.node_id, intended_target=target_id,
            fallback_reason=reason,
        )
