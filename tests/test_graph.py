"""Tests for the story graph arena, loading, and offline validation."""

import pytest

from terminus import storage
from terminus.graph import GraphError, StoryGraph, validate_story
from terminus.models import Choice, DialogueContent, DialogueGraph, DialogueNode, StateCondition


def _node(node_id, *choices, **kwargs):
    return DialogueNode(
        node_id=node_id,
        speaker="Someone",
        content=kwargs.pop("content", [DialogueContent(text=f"{node_id} text")]),
        choices=list(choices),
        **kwargs,
    )


def _choice(choice_id, target, **kwargs):
    return Choice(choice_id=choice_id, text=choice_id, next_node_id=target, **kwargs)


def _story(*graphs, start="samuel_hub", sentinels=("TRAVEL_TO_HUB",)):
    return StoryGraph(list(graphs), start, list(sentinels))


SAMUEL = DialogueGraph(key="samuel", start_node_id="samuel_hub", nodes=[
    _node("samuel_hub", _choice("go_maya", "maya_start"), tags=["hub"]),
])


# ── Loading ─────────────────────────────────────────────────


def test_presets_load():
    story = storage.get_story()
    assert story.start_node_id == "samuel_comprehensive_hub"
    assert "maya_robotics_passion" in story.nodes
    assert story.graph_keys["alex_jordan_fear"] == "alex_jordan"
    assert story.graph_starts["maya"] == "maya_introduction"
    assert story.is_sentinel("TRAVEL_TO_HUB")


def test_presets_validate_clean():
    assert validate_story(storage.get_story()) == []


def test_duplicate_node_id_rejected():
    other = DialogueGraph(key="other", start_node_id="samuel_hub", nodes=[_node("samuel_hub")])
    with pytest.raises(GraphError, match="Duplicate node id"):
        _story(SAMUEL, other)


def test_graph_start_must_exist():
    bad = DialogueGraph(key="maya", start_node_id="maya_nowhere", nodes=[_node("maya_start")])
    with pytest.raises(GraphError, match="start node"):
        _story(SAMUEL, bad)


def test_story_start_must_exist():
    with pytest.raises(GraphError, match="Story start node"):
        _story(SAMUEL, start="nowhere")


# ── Fallback candidates ─────────────────────────────────────


def test_fallback_candidates_order():
    """Graph start first, then hub-tagged nodes, then the rest of the namespace."""
    maya = DialogueGraph(key="maya", start_node_id="maya_start", nodes=[
        _node("maya_start"),
        _node("maya_middle"),
        _node("maya_hub", tags=["hub"]),
        _node("maya_end"),
    ])
    story = _story(SAMUEL, maya)
    ids = [n.node_id for n in story.fallback_candidates(story.get("maya_end"), exclude="maya_middle")]
    assert ids == ["maya_start", "maya_hub", "maya_end"]


def test_fallback_candidates_respect_character_id():
    jordan = DialogueGraph(key="alex_jordan", start_node_id="alex_jordan_intro", nodes=[
        _node("alex_jordan_intro", character_id="jordan"),
        _node("alex_jordan_fear", character_id="jordan"),
    ])
    story = _story(SAMUEL, jordan)
    ids = [n.node_id for n in story.fallback_candidates(story.get("alex_jordan_fear"))]
    assert ids == ["alex_jordan_intro", "alex_jordan_fear"]


# ── Validation ──────────────────────────────────────────────


def _issues(story):
    return [(i.level, i.node_id, i.message) for i in validate_story(story)]


def test_dangling_target_is_error():
    maya = DialogueGraph(key="maya", start_node_id="maya_start", nodes=[
        _node("maya_start", _choice("oops", "maya_missing")),
    ])
    issues = _issues(_story(SAMUEL, maya))
    assert ("error", "maya_start", "Choice 'oops' targets missing node 'maya_missing'") in issues


def test_sentinel_target_is_not_dangling():
    maya = DialogueGraph(key="maya", start_node_id="maya_start", nodes=[
        _node("maya_start", _choice("leave", "TRAVEL_TO_HUB")),
    ])
    assert _issues(_story(SAMUEL, maya)) == []


def test_unknown_pattern_is_error():
    maya = DialogueGraph(key="maya", start_node_id="maya_start", nodes=[
        _node("maya_start", _choice("brave", "samuel_hub", pattern="heroic")),
    ])
    issues = _issues(_story(SAMUEL, maya))
    assert any(level == "error" and "unknown pattern 'heroic'" in msg for level, _, msg in issues)


def test_empty_content_is_error():
    maya = DialogueGraph(key="maya", start_node_id="maya_start", nodes=[
        _node("maya_start", content=[]),
    ])
    assert ("error", "maya_start", "Node has no content") in _issues(_story(SAMUEL, maya))


def test_unreachable_is_warning():
    maya = DialogueGraph(key="maya", start_node_id="maya_start", nodes=[
        _node("maya_start"),
        _node("maya_orphan"),
    ])
    assert ("warning", "maya_orphan", "Node is unreachable") in _issues(_story(SAMUEL, maya))


def test_unguarded_required_state_is_warning():
    maya = DialogueGraph(key="maya", start_node_id="maya_start", nodes=[
        _node("maya_start", _choice("in", "maya_secret")),
        _node("maya_secret", required_state=StateCondition(has_global_flags=["key"])),
    ])
    issues = _issues(_story(SAMUEL, maya))
    assert any(level == "warning" and node_id == "maya_secret" for level, node_id, _ in issues)


def test_guarded_required_state_is_quiet():
    guard = StateCondition(has_global_flags=["key"])
    maya = DialogueGraph(key="maya", start_node_id="maya_start", nodes=[
        _node("maya_start", _choice("in", "maya_secret", visible_condition=guard)),
        _node("maya_secret", required_state=StateCondition(has_global_flags=["key"])),
    ])
    assert _issues(_story(SAMUEL, maya)) == []
