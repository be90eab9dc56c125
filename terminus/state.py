"""SessionState reducer: the only code that changes narrative state.

apply_state_change(state, change) returns a new SessionState; the input is
never mutated, so a step that is abandoned half way leaves the caller's
state as it was.

Effects:
  add/remove global flags   — set union / difference
  pattern_changes           — added to pattern counts
  trust_change              — added, then clamped to [MIN_TRUST, MAX_TRUST]
  set_relationship_status   — explicit, never derived from trust
  add/remove knowledge flags — set union / difference on the character

Set operations and clamped deltas at a bound are idempotent, so they are
safe inside a node's on_enter (which re-runs on every visit).
"""

import logging
from datetime import datetime, timezone

from terminus.models import (
    CharacterState,
    Choice,
    ChoiceRecord,
    SessionState,
    StateChange,
)

logger = logging.getLogger(__name__)

MIN_TRUST = 0
MAX_TRUST = 10


def new_session_state(user_id: str, start_node_id: str) -> SessionState:
    """Fresh state positioned at the story's safe start."""
    return SessionState(user_id=user_id, current_node_id=start_node_id)


def clamp(value: int, lo: int = MIN_TRUST, hi: int = MAX_TRUST) -> int:
    return max(lo, min(hi, value))


def _character(state: SessionState, character_id: str) -> CharacterState:
    """Return the (already copied) character, creating it on first contact."""
    char = state.characters.get(character_id)
    if char is None:
        char = CharacterState(character_id=character_id)
        state.characters[character_id] = char
    return char


def apply_state_change(
    state: SessionState,
    change: StateChange,
    *,
    min_trust: int = MIN_TRUST,
    max_trust: int = MAX_TRUST,
    character_id: str | None = None,
) -> SessionState:
    """Return a new state with `change` applied.

    Character-scoped fields target `change.character_id`, else `character_id`
    (the owning node's namespace), the same rule conditions.evaluate uses.
    """
    new_state = state.model_copy(deep=True)

    if change.add_global_flags:
        new_state.global_flags |= set(change.add_global_flags)
    if change.remove_global_flags:
        new_state.global_flags -= set(change.remove_global_flags)

    if change.pattern_changes:
        for pattern, delta in change.pattern_changes.items():
            new_state.patterns[pattern] = new_state.patterns.get(pattern, 0) + delta

    has_character_fields = (
        change.trust_change is not None
        or change.set_relationship_status is not None
        or change.add_knowledge_flags
        or change.remove_knowledge_flags
    )
    if has_character_fields:
        target = change.character_id or character_id
        if not target:
            logger.warning("Character-scoped state change with no character to target: %s", change)
            return new_state
        char = _character(new_state, target)
        if change.trust_change is not None:
            char.trust = clamp(char.trust + change.trust_change, min_trust, max_trust)
        if change.set_relationship_status is not None:
            char.relationship_status = change.set_relationship_status
        if change.add_knowledge_flags:
            char.knowledge_flags |= set(change.add_knowledge_flags)
        if change.remove_knowledge_flags:
            char.knowledge_flags -= set(change.remove_knowledge_flags)

    return new_state


def record_choice(
    state: SessionState, node_id: str, choice: Choice, now: datetime | None = None
) -> SessionState:
    """Return a new state with the choice appended to choice_history."""
    new_state = state.model_copy(deep=True)
    new_state.choice_history.append(ChoiceRecord(
        node_id=node_id,
        choice_id=choice.choice_id,
        text=choice.text,
        pattern=choice.pattern,
        timestamp=now or datetime.now(timezone.utc),
    ))
    return new_state


def record_visit(state: SessionState, character_id: str, node_id: str) -> SessionState:
    """Return a new state with node_id appended to the character's history."""
    new_state = state.model_copy(deep=True)
    _character(new_state, character_id).conversation_history.append(node_id)
    return new_state
