"""Evidence-based skill inference.

Per applied choice:
  1. extract_demonstrations() classifies the choice against the authored
     scene-skill map (exact id, then legacy fuzzy text match), falling back
     to the pattern table only for scenes with no authored map. Keyword
     matches are always unioned in.
  2. EvidenceStore.append() adds the demonstration and enforces retention.
  3. EvidenceStore.save() persists through the key-value collaborator,
     with cleanup and a single retry before reporting PersistenceFailure.
  4. Sync events (choice_recorded, skill_summary) go to the SyncSink.

Scene-skill map format (presets/scene-skill-map.json):
  {"<scene_id>": {"character_arc": "...", "scene_description": "...",
                  "choices": {"<choice_id>": {"skills": [...],
                                              "justification": "...",
                                              "intensity": "high"}}}}
"""

from .extractor import (  # noqa: F401
    KEYWORD_SKILLS,
    PATTERN_SKILLS,
    extract_demonstrations,
    find_choice_mapping,
    keyword_skills,
    normalize_skill,
    pattern_skills,
)
from .store import (  # noqa: F401
    CorruptPersistedState,
    EvidenceLog,
    EvidenceStore,
    RetentionPolicy,
    is_milestone,
    milestone_label,
    trim_demonstrations,
)
from .sync import (  # noqa: F401
    MemorySyncQueue,
    SyncEvent,
    SyncSink,
    choice_recorded_event,
    skill_summary_events,
)
