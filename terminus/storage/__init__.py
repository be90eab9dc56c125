"""File-based JSON storage.

Data layout:
  data/
    config.json          Engine settings (retention, matching, templates)
    kv/                  Key-value blobs, one file per key
      session-<user>-<hash>.json        Serialized SessionState
      skill-tracker-<user>-<hash>.json  Serialized evidence log + milestones
  presets/
    story.json           Manifest: graph files, safe start node, sentinels
    graphs/<key>.json    One dialogue graph per character arc
    scene-skill-map.json Authored (scene, choice) → skills + justification
    career-paths.json    Career reference data, in ranking tie-break order

Key slug rules: key → Unicode normalize → strip non-ASCII → lowercase →
replace non-alnum runs with hyphen → strip leading/trailing hyphens.

Config: get_config() returns defaults merged with stored values.
update_config() merges known sections key-by-key and persists.
"""

# Re-export all public symbols so `from terminus import storage` keeps working.

from .core import (  # noqa: F401
    data_dir,
    init_storage,
    kv_dir,
    presets_dir,
    slugify,
)

from .kv import (  # noqa: F401
    FileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    key_filename,
)

from .config import (  # noqa: F401
    DEFAULT_CAREER_EVIDENCE_TEMPLATE,
    DEFAULT_JUSTIFICATION_TEMPLATE,
    get_config,
    update_config,
)

from .presets import (  # noqa: F401
    get_career_paths,
    get_scene_skill_map,
    get_story,
)
