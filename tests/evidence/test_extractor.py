"""Tests for the evidence extractor: authored, fuzzy, pattern and keyword paths."""

import logging
from datetime import datetime, timezone

from terminus import storage
from terminus.evidence import extractor
from terminus.evidence.extractor import extract_demonstrations, normalize_skill
from terminus.justifications import TemplateError
from terminus.models import CharacterState, Choice, ChoiceRecord
from terminus.state import new_session_state

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _state():
    return new_session_state("p1", "samuel_comprehensive_hub")


def _story_choice(node_id, choice_id):
    node = storage.get_story().get(node_id)
    return next(c for c in node.choices if c.choice_id == choice_id)


def _extract(choice, scene_id, state=None):
    return extract_demonstrations(
        choice, scene_id, state or _state(), storage.get_scene_skill_map(), now=NOW,
    )


# ── Authored mappings ───────────────────────────────────────


def test_debug_stabilize_authored():
    choice = _story_choice("maya_robotics_passion", "debug_stabilize")
    demos = _extract(choice, "maya_robotics_passion")
    assert len(demos) == 1
    demo = demos[0]
    assert demo.skills == ["emotionalIntelligence", "patience"]
    assert demo.justification.startswith("Used physical touch to dampen the feedback loop")
    assert demo.intensity == "high"
    assert demo.scene_description == 'The "Twitching Hand" Simulation - Servo Debug'
    assert demo.choice_text == "Rest your palm on the arm and steady it."
    assert demo.timestamp == NOW


def test_authored_skills_are_not_blended_with_pattern():
    """debug_voltage has pattern analytical but only the authored skill is used."""
    choice = _story_choice("maya_robotics_passion", "debug_voltage")
    assert _extract(choice, "maya_robotics_passion")[0].skills == ["technicalLiteracy"]


def test_fuzzy_match_on_legacy_text():
    choice = Choice(choice_id="legacy_7", text="I'd try debug stabilize first",
                    next_node_id="maya_servo_steady")
    demos = _extract(choice, "maya_robotics_passion")
    assert demos[0].skills == ["emotionalIntelligence", "patience"]


def test_authored_scene_unmatched_choice_gets_no_pattern_skills():
    choice = Choice(choice_id="walk_off", text="Walk away.", next_node_id="samuel_comprehensive_hub",
                    pattern="helping")
    assert _extract(choice, "maya_robotics_passion") == []


def test_authored_scene_unmatched_choice_keeps_keywords():
    choice = Choice(choice_id="ask_cost", text="How much do the parts cost?",
                    next_node_id="maya_crossroads", pattern="analytical")
    demos = _extract(choice, "maya_robotics_passion")
    assert demos[0].skills == ["financialLiteracy"]
    assert demos[0].intensity is None
    assert "The \"Twitching Hand\" Simulation" in demos[0].justification


def test_authored_plus_keywords_union():
    choice = _story_choice("maya_crossroads", "crossroads_robotics")
    demos = _extract(choice, "maya_crossroads")
    assert demos[0].skills == ["leadership", "communication", "adaptability", "digitalLiteracy"]


# ── Pattern fallback ────────────────────────────────────────


def test_pattern_fallback_for_unmapped_scene():
    choice = _story_choice("maya_introduction", "intro_sit")
    demos = _extract(choice, "maya_introduction")
    assert demos[0].skills == ["emotionalIntelligence", "collaboration", "communication"]
    j = demos[0].justification
    assert j.startswith('Chose "Mind if I sit? You look like you could use a break." during Maya introduction')
    assert "showing a helping approach in the Maya arc" in j
    assert "Skills in play: emotional intelligence, collaboration, communication" in j
    assert j.endswith("[Early Journey]")


def test_declared_skills_are_normalized_and_unioned():
    choice = _story_choice("devon_debug_step_1", "load_script")
    demos = _extract(choice, "devon_debug_step_1")
    assert demos[0].skills == [
        "criticalThinking", "problemSolving", "digitalLiteracy", "systemsThinking",
    ]


def test_unknown_pattern_logs_and_yields_nothing(caplog):
    choice = Choice(choice_id="brave", text="Charge in.", next_node_id="devon_connect",
                    pattern="heroic")
    with caplog.at_level(logging.WARNING):
        demos = _extract(choice, "devon_introduction")
    assert demos == []
    assert "Unknown pattern 'heroic'" in caplog.text


def test_no_pattern_no_keywords_yields_nothing():
    choice = Choice(choice_id="cont", text="(Continue)", next_node_id="maya_crossroads")
    assert _extract(choice, "maya_servo_steady") == []


def test_relationship_and_stage_in_generated_justification():
    state = _state()
    state.characters["maya"] = CharacterState(character_id="maya", trust=7)
    state.choice_history = [
        ChoiceRecord(node_id="n", choice_id=f"c{i}", text="t", timestamp=NOW) for i in range(8)
    ]
    choice = _story_choice("maya_studies", "studies_listen")
    j = _extract(choice, "maya_studies", state)[0].justification
    assert "(earning trust)" in j
    assert j.endswith("[Mid Journey]")


def test_broken_template_falls_back_to_plain(monkeypatch, caplog):
    def boom(template_str, context):
        raise TemplateError("bad template")

    monkeypatch.setattr(extractor, "render_template", boom)
    choice = _story_choice("maya_introduction", "intro_sit")
    with caplog.at_level(logging.WARNING):
        demos = _extract(choice, "maya_introduction")
    assert demos[0].justification.startswith('Chose "Mind if I sit?')
    assert "bad template" in caplog.text


# ── Keywords ────────────────────────────────────────────────


def test_keyword_matches_and_regional():
    choice = Choice(choice_id="ask", text="Tell me about the tech scene in Birmingham.",
                    next_node_id="x")
    demos = _extract(choice, "samuel_walk")
    assert demos[0].skills == ["digitalLiteracy", "communication", "culturalCompetence"]


def test_keywords_match_word_starts_only():
    assert extractor.keyword_skills("x", "Don't mislead her.") == []
    assert extractor.keyword_skills("x", "Leading the team together") == ["leadership", "collaboration"]


def test_regional_keyword_in_scene_id():
    assert extractor.keyword_skills("birmingham_depot", "Look around.") == ["culturalCompetence"]


def test_normalize_skill():
    assert normalize_skill("emotional_intelligence") == "emotionalIntelligence"
    assert normalize_skill("systemsThinking") == "systemsThinking"
    assert normalize_skill("communication") == "communication"
