"""StateCondition evaluation — the gate for every node and choice.

Rules:
  - An absent condition, or an absent field within one, always passes.
  - Character-scoped fields (trust, relationship, knowledge flags) read the
    condition's character_id, else the owning node's character namespace.
  - A character the player has not met yet evaluates as a fresh
    CharacterState (trust 0, stranger, no flags), not as a failure.
  - Global flag and pattern fields read SessionState directly.
"""

from terminus.models import CharacterState, SessionState, StateCondition


def _character(state: SessionState, character_id: str) -> CharacterState:
    existing = state.characters.get(character_id)
    if existing is not None:
        return existing
    return CharacterState(character_id=character_id)


def evaluate(
    condition: StateCondition | None, state: SessionState, character_id: str
) -> bool:
    """Return True when `condition` holds for `state`."""
    if condition is None:
        return True
    char = _character(state, condition.character_id or character_id)

    if condition.trust is not None:
        if condition.trust.min is not None and char.trust < condition.trust.min:
            return False
        if condition.trust.max is not None and char.trust > condition.trust.max:
            return False

    if condition.relationship is not None:
        if char.relationship_status not in condition.relationship:
            return False

    if condition.has_knowledge_flags is not None:
        if not set(condition.has_knowledge_flags) <= char.knowledge_flags:
            return False
    if condition.lacks_knowledge_flags is not None:
        if set(condition.lacks_knowledge_flags) & char.knowledge_flags:
            return False

    if condition.has_global_flags is not None:
        if not set(condition.has_global_flags) <= state.global_flags:
            return False
    if condition.lacks_global_flags is not None:
        if set(condition.lacks_global_flags) & state.global_flags:
            return False

    if condition.patterns is not None:
        for pattern, bounds in condition.patterns.items():
            value = state.patterns.get(pattern, 0)
            if bounds.min is not None and value < bounds.min:
                return False
            if bounds.max is not None and value > bounds.max:
                return False

    return True


def describe_failure(
    condition: StateCondition | None, state: SessionState, character_id: str
) -> str:
    """Human-readable reason a condition fails, for tooltips and debugging."""
    if condition is None:
        return ""
    cid = condition.character_id or character_id
    char = _character(state, cid)
    reasons: list[str] = []

    if condition.trust is not None:
        if condition.trust.min is not None and char.trust < condition.trust.min:
            reasons.append(f"Need {condition.trust.min} trust with {cid} (have {char.trust})")
        if condition.trust.max is not None and char.trust > condition.trust.max:
            reasons.append(f"Need at most {condition.trust.max} trust with {cid} (have {char.trust})")

    if condition.relationship is not None and char.relationship_status not in condition.relationship:
        reasons.append(f"Need {' or '.join(condition.relationship)} relationship with {cid}")

    for flag in condition.has_knowledge_flags or []:
        if flag not in char.knowledge_flags:
            reasons.append(f"{cid} must know: {flag}")
    for flag in condition.lacks_knowledge_flags or []:
        if flag in char.knowledge_flags:
            reasons.append(f"{cid} must not know: {flag}")

    for flag in condition.has_global_flags or []:
        if flag not in state.global_flags:
            reasons.append(f"Missing requirement: {flag}")
    for flag in condition.lacks_global_flags or []:
        if flag in state.global_flags:
            reasons.append(f"Blocked by: {flag}")

    for pattern, bounds in (condition.patterns or {}).items():
        value = state.patterns.get(pattern, 0)
        if bounds.min is not None and value < bounds.min:
            reasons.append(f"Need {bounds.min} {pattern} choices (have {value})")
        if bounds.max is not None and value > bounds.max:
            reasons.append(f"Need at most {bounds.max} {pattern} choices (have {value})")

    return ", ".join(reasons) if reasons else "Requirements not met"
