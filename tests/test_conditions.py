"""Tests for StateCondition evaluation and failure reasons."""

from terminus.conditions import describe_failure, evaluate
from terminus.models import Range, StateChange, StateCondition
from terminus.state import apply_state_change, new_session_state


def _state(**change):
    state = new_session_state("p1", "maya_introduction")
    if change:
        state = apply_state_change(state, StateChange(**change))
    return state


def test_absent_condition_passes():
    assert evaluate(None, _state(), "maya")
    assert evaluate(StateCondition(), _state(), "maya")


def test_trust_min_uses_owning_character():
    cond = StateCondition(trust=Range(min=3))
    assert not evaluate(cond, _state(character_id="maya", trust_change=2), "maya")
    assert evaluate(cond, _state(character_id="maya", trust_change=3), "maya")


def test_trust_max():
    cond = StateCondition(trust=Range(max=2))
    assert evaluate(cond, _state(character_id="maya", trust_change=2), "maya")
    assert not evaluate(cond, _state(character_id="maya", trust_change=3), "maya")


def test_explicit_character_overrides_namespace():
    """A condition naming a character reads that character, not the node's."""
    cond = StateCondition(character_id="devon", trust=Range(min=1))
    state = _state(character_id="maya", trust_change=5)
    assert not evaluate(cond, state, "maya")


def test_unmet_character_is_fresh_not_failure():
    """A character never met evaluates as trust 0 / stranger."""
    assert evaluate(StateCondition(trust=Range(max=0)), _state(), "jordan")
    assert evaluate(StateCondition(relationship=["stranger"]), _state(), "jordan")


def test_relationship_status():
    cond = StateCondition(relationship=["confidant"])
    assert not evaluate(cond, _state(), "maya")
    state = _state(character_id="maya", set_relationship_status="confidant")
    assert evaluate(cond, state, "maya")


def test_knowledge_flags():
    state = _state(character_id="maya", add_knowledge_flags=["knows_family"])
    assert evaluate(StateCondition(has_knowledge_flags=["knows_family"]), state, "maya")
    assert not evaluate(StateCondition(lacks_knowledge_flags=["knows_family"]), state, "maya")
    assert not evaluate(StateCondition(has_knowledge_flags=["knows_family"]), state, "devon")


def test_global_flags():
    state = _state(add_global_flags=["met_alex"])
    assert not evaluate(StateCondition(has_global_flags=["met_alex", "met_jordan"]), state, "jordan")
    assert evaluate(StateCondition(has_global_flags=["met_alex"]), state, "jordan")
    assert not evaluate(StateCondition(lacks_global_flags=["met_alex"]), state, "jordan")


def test_pattern_ranges():
    state = _state(pattern_changes={"helping": 3})
    assert evaluate(StateCondition(patterns={"helping": Range(min=3)}), state, "maya")
    assert not evaluate(StateCondition(patterns={"helping": Range(max=2)}), state, "maya")
    assert not evaluate(StateCondition(patterns={"building": Range(min=1)}), state, "maya")


# ── Failure reasons ─────────────────────────────────────────


def test_describe_trust_failure():
    state = _state(character_id="maya", trust_change=2)
    reason = describe_failure(StateCondition(trust=Range(min=5)), state, "maya")
    assert reason == "Need 5 trust with maya (have 2)"


def test_describe_multiple_failures_joined():
    cond = StateCondition(trust=Range(min=1), has_global_flags=["met_alex"])
    reason = describe_failure(cond, _state(), "jordan")
    assert reason == "Need 1 trust with jordan (have 0), Missing requirement: met_alex"


def test_describe_none_is_empty():
    assert describe_failure(None, _state(), "maya") == ""
